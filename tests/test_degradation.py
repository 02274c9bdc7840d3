"""Tests for credential degradation."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from caddienet.errors import ClassificationFailure, ServiceUnavailable
from caddienet.models.preferences import CredentialPreferenceUpdate, CredentialSource
from caddienet.services.degradation import (
    MAX_ATTEMPTS,
    SHARED_CREDENTIAL,
    USER_CREDENTIAL,
    CredentialAttempt,
    CredentialPlan,
    DegradationController,
    DegradationStatus,
)
from caddienet.services.preferences import CredentialPreferenceStore


@pytest.fixture
def store() -> CredentialPreferenceStore:
    return CredentialPreferenceStore(master_key="test-master-key")


@pytest.fixture
def controller(store: CredentialPreferenceStore) -> DegradationController:
    return DegradationController(preferences=store, shared_credential="sk-shared")


async def use_own_key(store: CredentialPreferenceStore, user_id: str, key: str = "sk-user") -> None:
    await store.write(
        user_id,
        CredentialPreferenceUpdate(source=CredentialSource.USER, user_credential=SecretStr(key)),
    )


class TestCredentialPlan:
    """Attempt ordering."""

    @pytest.mark.asyncio
    async def test_default_preference_uses_shared_only(self, controller) -> None:
        plan = await controller.plan("u1")
        assert plan.enabled is True
        assert plan.labels == [SHARED_CREDENTIAL]

    @pytest.mark.asyncio
    async def test_own_key_tried_before_shared(self, controller, store) -> None:
        await use_own_key(store, "u1")
        plan = await controller.plan("u1")
        assert plan.labels == [USER_CREDENTIAL, SHARED_CREDENTIAL]

    @pytest.mark.asyncio
    async def test_user_source_without_key_falls_to_shared(self, controller, store) -> None:
        await store.write("u1", CredentialPreferenceUpdate(source=CredentialSource.USER))
        plan = await controller.plan("u1")
        assert plan.labels == [SHARED_CREDENTIAL]

    @pytest.mark.asyncio
    async def test_disabled_plan_is_empty(self, controller, store) -> None:
        await store.write("u1", CredentialPreferenceUpdate(enabled=False))
        plan = await controller.plan("u1")
        assert plan.enabled is False
        assert plan.attempts == ()

    def test_plan_bound_enforced(self) -> None:
        attempts = tuple(CredentialAttempt(f"c{i}", SecretStr("x")) for i in range(MAX_ATTEMPTS + 1))
        with pytest.raises(ValueError, match="at most 2"):
            CredentialPlan(enabled=True, attempts=attempts)

    def test_plan_repr_masks_credentials(self) -> None:
        plan = CredentialPlan(
            enabled=True, attempts=(CredentialAttempt(USER_CREDENTIAL, SecretStr("sk-user")),)
        )
        assert "sk-user" not in repr(plan)


class TestDegradationRun:
    """Running work under a plan."""

    @pytest.mark.asyncio
    async def test_first_success_stops(self, controller, store) -> None:
        await use_own_key(store, "u1")
        seen: list[str] = []

        async def work(credential: str) -> str:
            seen.append(credential)
            return "ok"

        outcome = await controller.resolve_credential_and_run("u1", work)

        assert outcome.ok
        assert outcome.value == "ok"
        assert outcome.credential_label == USER_CREDENTIAL
        assert outcome.attempts_made == 1
        assert seen == ["sk-user"]

    @pytest.mark.asyncio
    async def test_failed_user_key_retries_with_shared(self, controller, store) -> None:
        await use_own_key(store, "u1", "sk-revoked")
        seen: list[str] = []

        async def work(credential: str) -> str:
            seen.append(credential)
            if credential == "sk-revoked":
                raise ClassificationFailure("401")
            return "classified"

        outcome = await controller.resolve_credential_and_run("u1", work)

        assert outcome.status is DegradationStatus.OK
        assert outcome.credential_label == SHARED_CREDENTIAL
        assert outcome.attempts_made == 2
        assert seen == ["sk-revoked", "sk-shared"]
        assert [label for label, _ in outcome.failures] == [USER_CREDENTIAL]

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self, controller, store) -> None:
        await use_own_key(store, "u1")
        calls = 0

        async def work(credential: str) -> str:
            nonlocal calls
            calls += 1
            raise ClassificationFailure(f"failure {calls}")

        outcome = await controller.resolve_credential_and_run("u1", work)

        assert outcome.status is DegradationStatus.FAILED
        assert calls == MAX_ATTEMPTS
        assert str(outcome.error) == "failure 2"

    @pytest.mark.asyncio
    async def test_disabled_never_calls_work(self, controller, store) -> None:
        await store.write("u1", CredentialPreferenceUpdate(enabled=False))

        async def work(credential: str) -> str:
            raise AssertionError("must not be called")

        outcome = await controller.resolve_credential_and_run("u1", work)
        assert outcome.status is DegradationStatus.DISABLED
        assert outcome.attempts_made == 0

    @pytest.mark.asyncio
    async def test_missing_shared_credential_fails_attempt(self, store) -> None:
        controller = DegradationController(preferences=store, shared_credential=None)

        async def work(credential: str) -> str:
            raise AssertionError("must not be called")

        outcome = await controller.resolve_credential_and_run("u1", work)
        assert outcome.status is DegradationStatus.FAILED
        assert isinstance(outcome.error, ServiceUnavailable)

    @pytest.mark.asyncio
    async def test_events_before_and_after_each_attempt(self, controller, store) -> None:
        await use_own_key(store, "u1", "sk-revoked")
        events: list[tuple[str, object]] = []

        async def work(credential: str) -> str:
            if credential == "sk-revoked":
                raise ClassificationFailure("bad key")
            return "ok"

        await controller.resolve_credential_and_run(
            "u1", work, on_event=lambda message, data: events.append((message, data))
        )

        messages = [message for message, _ in events]
        assert messages == [
            "Attempt 1/2: calling assistant service with user credential",
            "Attempt 1/2 with user credential failed",
            "Attempt 2/2: calling assistant service with shared credential",
            "Attempt 2/2 with shared credential succeeded",
        ]
        assert isinstance(events[1][1], ClassificationFailure)
        assert all("sk-" not in message for message in messages)

    @pytest.mark.asyncio
    async def test_from_settings_reads_shared_credential(self, store, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        controller = DegradationController.from_settings(store)
        seen: list[str] = []

        async def work(credential: str) -> None:
            seen.append(credential)

        await controller.resolve_credential_and_run("u1", work)
        assert seen == ["sk-env"]
