"""Tagged notifications delivered to the session at tick boundaries.

Recorder finalization and clip playback complete asynchronously. Their
completions are posted here from any thread, then drained by the tick loop
and validated against the current session phase before anything acts on
them.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class RecordingStopped:
    """The recorder finished packaging a recording into a playable clip."""
    handle: Any
    asset: Any


@dataclass(frozen=True)
class RecordingFailed:
    """The recorder stopped but could not produce a clip."""
    handle: Any
    error: Exception


@dataclass(frozen=True)
class PlaybackEnded:
    """A clip played through to its end."""
    asset: Any


@dataclass(frozen=True)
class ManualStart:
    """Start a session without waving (button / key press)."""


@dataclass(frozen=True)
class ResetRequested:
    """Abort whatever is running and return to idle."""


Notification = Union[RecordingStopped, RecordingFailed, PlaybackEnded, ManualStart, ResetRequested]


class NotificationQueue:
    """Thread-safe mailbox between collaborators and the tick loop."""

    def __init__(self):
        self._queue: queue.SimpleQueue = queue.SimpleQueue()

    def post(self, event: Notification):
        self._queue.put(event)

    def drain(self) -> list[Notification]:
        """Return every pending notification in arrival order."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    @property
    def pending(self) -> bool:
        return not self._queue.empty()
