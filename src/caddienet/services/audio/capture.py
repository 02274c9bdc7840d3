"""Audio capture state machine.

Owns one microphone session at a time::

    IDLE -> REQUESTING_PERMISSION -> RECORDING -> FINALIZING -> IDLE

Every exit path (stop, error, unmount) goes through ``_release()`` so the
device is always handed back and the elapsed-time counter cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from caddienet.config import get_settings
from caddienet.errors import CaptureBusy, PermissionDenied
from caddienet.models.commands import AudioClip

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    """Capture lifecycle."""

    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    RECORDING = "recording"
    FINALIZING = "finalizing"


class MicrophoneStream(Protocol):
    """An opened capture device."""

    def start_recording(self) -> None: ...

    async def stop_recording(self) -> AudioClip: ...

    def buffered_pcm(self) -> bytes: ...

    def close(self) -> None: ...


class Microphone(Protocol):
    """Grants access to a capture device."""

    async def request_access(self) -> MicrophoneStream: ...


class LiveCaptioner(Protocol):
    """Produces non-authoritative captions while recording."""

    async def start(self, stream: MicrophoneStream, on_hint: Callable[[str], None]) -> None: ...

    async def stop(self) -> None: ...


@dataclass
class RecordingSession:
    """Transient state of the recording in progress."""

    is_recording: bool = True
    elapsed_seconds: int = 0
    live_transcript_hint: str = ""


class AudioCaptureController:
    """Drives a single microphone session.

    ``on_complete`` receives the finished clip exactly once per successful
    recording. ``on_error`` receives each capture error exactly once. Neither
    fires on unmount.
    """

    def __init__(
        self,
        microphone: Microphone,
        *,
        on_complete: Callable[[AudioClip], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        captioner: LiveCaptioner | None = None,
        tick_interval: float | None = None,
    ) -> None:
        self._microphone = microphone
        self.on_complete = on_complete
        self.on_error = on_error
        self._captioner = captioner
        self._tick_interval = (
            tick_interval
            if tick_interval is not None
            else get_settings().audio.tick_interval_seconds
        )

        self._state = CaptureState.IDLE
        self._session: RecordingSession | None = None
        self._stream: MicrophoneStream | None = None
        self._ticker: asyncio.Task[None] | None = None
        # Bumped by start_capture() and unmount(); stale awaits compare against it
        self._generation = 0

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def session(self) -> RecordingSession | None:
        return self._session

    async def start_capture(self) -> None:
        """Request the microphone and begin recording.

        A refused or missing device leaves the controller IDLE and reports
        ``PermissionDenied`` through ``on_error``; the caller may try again.

        Raises:
            CaptureBusy: a session is already active.
        """
        if self._state is not CaptureState.IDLE:
            raise CaptureBusy(f"Capture already active ({self._state.value})")

        self._state = CaptureState.REQUESTING_PERMISSION
        self._generation += 1
        generation = self._generation
        try:
            stream = await self._microphone.request_access()
        except Exception as e:
            if generation != self._generation:
                # Unmounted while waiting; the caller no longer listens
                return
            self._state = CaptureState.IDLE
            if not isinstance(e, PermissionDenied):
                e = PermissionDenied(f"Microphone unavailable: {e}")
            self._notify_error(e)
            return

        if generation != self._generation:
            # Unmounted (and possibly restarted) while waiting for permission
            stream.close()
            return

        self._stream = stream
        try:
            stream.start_recording()
        except Exception as e:
            await self._release()
            self._notify_error(PermissionDenied(f"Microphone failed to start: {e}"))
            return

        self._session = RecordingSession()
        self._state = CaptureState.RECORDING
        self._ticker = asyncio.create_task(self._tick())
        if self._captioner is not None:
            await self._captioner.start(stream, self._update_hint)
        logger.info("Recording started")

    async def stop_capture(self) -> AudioClip | None:
        """Stop recording and hand the clip to ``on_complete``.

        Returns the clip, or None when nothing was recording, the flush
        failed, or the controller was unmounted during the flush.
        """
        if self._state is not CaptureState.RECORDING or self._stream is None:
            return None

        self._state = CaptureState.FINALIZING
        generation = self._generation
        if self._session is not None:
            self._session.is_recording = False

        try:
            clip = await self._stream.stop_recording()
        except Exception as e:
            if generation != self._generation:
                return None
            logger.error("Failed to finalize recording: %s", e)
            await self._release()
            self._notify_error(e)
            return None

        if generation != self._generation:
            # unmount() already released the device
            logger.info("Recording discarded after unmount")
            return None

        try:
            if self.on_complete is not None:
                self.on_complete(clip)
        finally:
            await self._release()

        logger.info("Recording finished (%d bytes)", clip.size)
        return clip

    async def unmount(self) -> None:
        """Tear down any session without delivering a clip.

        Work still awaiting the device (a permission request or a flush) is
        invalidated and will not touch the next session.
        """
        if self._state is CaptureState.IDLE:
            return
        self._generation += 1
        if self._state is CaptureState.REQUESTING_PERMISSION:
            # start_capture() closes the stream once access resolves
            self._state = CaptureState.IDLE
            return
        await self._release()

    async def _release(self) -> None:
        """Single cleanup path: cancel counter, stop captions, free device."""
        if self._ticker is not None:
            self._ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ticker
            self._ticker = None

        if self._captioner is not None:
            try:
                await self._captioner.stop()
            except Exception as e:
                logger.warning("Live captioner did not stop cleanly: %s", e)

        if self._stream is not None:
            try:
                self._stream.close()
            except Exception as e:
                logger.warning("Error releasing microphone: %s", e)
            self._stream = None

        self._session = None
        self._state = CaptureState.IDLE

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if self._session is not None and self._session.is_recording:
                self._session.elapsed_seconds += 1

    def _update_hint(self, text: str) -> None:
        if self._session is not None:
            self._session.live_transcript_hint = text

    def _notify_error(self, error: Exception) -> None:
        logger.warning("Capture error: %s", error)
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("Capture error observer raised")
