"""Step-through trace of one assistant interaction.

The orchestrator pushes human-readable lines as it works. A diagnostic UI
walks them one at a time (``next``/``previous``), lets a timer auto-advance,
or skips straight to the end.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_DATA_LENGTH = 100


def _simplify(data: Mapping[str, Any]) -> dict[str, Any]:
    simplified: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, (Mapping, list, tuple, set, BaseModel)):
            simplified[str(key)] = "[Object]"
        else:
            simplified[str(key)] = value
    return simplified


def format_trace_entry(message: str, data: Any = None) -> str:
    """Render ``message`` with a short preview of ``data``.

    Nested values collapse to ``[Object]``, ``None`` values are dropped, and
    the preview is capped at 100 characters.
    """
    if data is None or (isinstance(data, (str, bytes, Mapping)) and not data):
        return message

    try:
        if isinstance(data, str):
            data_string = data
        elif isinstance(data, (bytes, bytearray)):
            data_string = f"{len(data)} bytes"
        elif isinstance(data, BaseException):
            data_string = f"{type(data).__name__}: {data}"
        elif isinstance(data, BaseModel):
            data_string = json.dumps(_simplify(data.model_dump(by_alias=True)), default=str)
        elif isinstance(data, Mapping):
            data_string = json.dumps(_simplify(data), default=str)
        else:
            data_string = str(data)
    except (TypeError, ValueError):
        return f"{message} (data could not be formatted)"

    if len(data_string) > MAX_DATA_LENGTH:
        data_string = data_string[: MAX_DATA_LENGTH - 3] + "..."
    return f"{message}: {data_string}"


class DebugTraceQueue:
    """Ordered trace lines with a cursor.

    While not skipped and non-empty, ``0 <= current_index < total``. After
    ``skip_all()`` the cursor sits at ``total`` (past the end) and stays
    there as more lines arrive, until ``reset()``.
    """

    def __init__(self) -> None:
        self._entries: list[str] = []
        self._index = 0
        self._skipped = False
        self._listeners: list[Callable[[DebugTraceQueue], None]] = []

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    @property
    def total(self) -> int:
        return len(self._entries)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def skipped(self) -> bool:
        return self._skipped

    @property
    def current_entry(self) -> str | None:
        if 0 <= self._index < len(self._entries):
            return self._entries[self._index]
        return None

    def subscribe(self, callback: Callable[[DebugTraceQueue], None]) -> Callable[[], None]:
        """Call ``callback`` after every change. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error("Trace listener error: %s", e)

    def push_entries(self, entries: list[str]) -> None:
        """Append lines to the current trace."""
        if not entries:
            return
        self._entries.extend(entries)
        if self._skipped:
            self._index = len(self._entries)
        self._notify()

    def next(self) -> None:
        """Move forward one line; no-op on the last line."""
        if self._index < len(self._entries) - 1:
            self._index += 1
            self._notify()

    def previous(self) -> None:
        """Move back one line; no-op on the first line."""
        if not self._entries:
            return
        if self._index > len(self._entries) - 1:
            # Stepping back from the skipped position lands on the last line
            self._index = len(self._entries) - 1
            self._notify()
        elif self._index > 0:
            self._index -= 1
            self._notify()

    def skip_all(self) -> None:
        """Jump past the end and stop auto-advance for this interaction."""
        self._skipped = True
        self._index = len(self._entries)
        self._notify()

    def advance(self) -> bool:
        """Timer-driven step. Returns whether the cursor moved."""
        if self._skipped or self._index >= len(self._entries) - 1:
            return False
        self._index += 1
        self._notify()
        return True

    def reset(self) -> None:
        """Clear everything for a new interaction."""
        self._entries = []
        self._index = 0
        self._skipped = False
        self._notify()
