"""Timed record → replay session controller.

Phases, in order:

    IDLE ──wave / ManualStart──▶ COUNTDOWN ──3s──▶ RECORDING ──3s──▶ (stop)
      ▲                                                                 │
      │                                                 RecordingStopped
      │                                                                 ▼
    IDLE ◀──PlaybackEnded── PLAYBACK ◀──0.8s fade── TRANSITION ◀────────┘

Time-driven transitions happen inside `advance()`. The two asynchronous
completions (recording finalized, playback finished) arrive as tagged
notifications and are only acted on when they match the current phase and
the handle/clip the machine is waiting for; anything else is discarded as
stale. Recorder failures are reported through `on_error` callbacks and
force the machine back to IDLE instead of propagating into the tick loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional

from wave_replay.config import ReplayConfig
from wave_replay.errors import CapabilityUnavailable, RecorderError, ReplayError, StaleNotification
from wave_replay.events import (
    ManualStart,
    Notification,
    PlaybackEnded,
    RecordingFailed,
    RecordingStopped,
    ResetRequested,
)

logger = logging.getLogger("wave_replay.session")


class SessionPhase(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RECORDING = "recording"
    TRANSITION = "transition"
    PLAYBACK = "playback"


@dataclass
class SessionState:
    """The single live session phase plus its phase-specific scalar.

    Only the scalar belonging to the current phase is meaningful; the others
    are zero.
    """
    phase: SessionPhase = SessionPhase.IDLE
    countdown_remaining: float = 0.0
    record_remaining: float = 0.0
    transition_progress: float = 0.0

    def snapshot(self) -> SessionState:
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "countdown_remaining": round(self.countdown_remaining, 3),
            "record_remaining": round(self.record_remaining, 3),
            "transition_progress": round(self.transition_progress, 3),
        }


class SessionStateMachine:
    """Sequences idle, countdown, recording, transition and playback.

    Args:
        recorder: Anything with `start(surface) -> handle`, `stop(handle)` and
            `is_active(handle)`; see SilhouetteRecorder.
        surface: Passed to `recorder.start`; the thing being recorded.
        config: Phase durations.
    """

    def __init__(self, recorder, surface=None, config: Optional[ReplayConfig] = None):
        self.recorder = recorder
        self.surface = surface
        self.config = config or ReplayConfig()
        self.state = SessionState()

        self._handle = None
        self._asset = None
        self._error_callbacks: list[Callable[[ReplayError], None]] = []
        self._phase_callbacks: list[Callable[[SessionPhase, SessionPhase], None]] = []
        self._idle_callbacks: list[Callable[[], None]] = []
        self.last_error: Optional[ReplayError] = None

    # --- callbacks ---

    def on_error(self, callback: Callable[[ReplayError], None]):
        """Register a callback for reported (non-fatal) failures."""
        self._error_callbacks.append(callback)

    def on_phase_change(self, callback: Callable[[SessionPhase, SessionPhase], None]):
        """Register a callback receiving (old_phase, new_phase)."""
        self._phase_callbacks.append(callback)

    def on_return_to_idle(self, callback: Callable[[], None]):
        """Register a hook run when playback finishes (e.g. clear gesture histories)."""
        self._idle_callbacks.append(callback)

    # --- accessors ---

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def handle(self):
        return self._handle

    @property
    def asset(self):
        return self._asset

    # --- tick ---

    def advance(
        self,
        dt: float,
        horizontal_wave: bool = False,
        events: Iterable[Notification] = (),
    ) -> SessionState:
        """Advance one tick: phase timing first, then notifications in order."""
        dt = max(0.0, dt)
        phase = self.state.phase

        if phase is SessionPhase.IDLE:
            if horizontal_wave:
                self._begin_countdown("wave")
        elif phase is SessionPhase.COUNTDOWN:
            self._tick_countdown(dt)
        elif phase is SessionPhase.RECORDING:
            self._tick_recording(dt)
        elif phase is SessionPhase.TRANSITION:
            self._tick_transition(dt)
        # PLAYBACK waits for PlaybackEnded

        for event in events:
            self.notify(event)

        return self.state

    def _tick_countdown(self, dt: float):
        self.state.countdown_remaining -= dt
        if self.state.countdown_remaining > 0:
            return

        try:
            handle = self.recorder.start(self.surface)
        except (CapabilityUnavailable, RecorderError) as e:
            self.fail(e)
            return

        self._handle = handle
        self._set_phase(SessionPhase.RECORDING, record_remaining=self.config.recording_duration)

    def _tick_recording(self, dt: float):
        self.state.record_remaining = max(0.0, self.state.record_remaining - dt)
        if self.state.record_remaining > 0:
            return
        self.stop_recording()

    def _tick_transition(self, dt: float):
        self.state.transition_progress -= dt / self.config.transition_duration
        if self.state.transition_progress > 0:
            return

        # PLAYBACK is only entered with a clip that started playing
        try:
            self._asset.play()
        except RecorderError as e:
            self.fail(e)
            return
        self._set_phase(SessionPhase.PLAYBACK)

    # --- commands ---

    def stop_recording(self) -> bool:
        """Ask the recorder to stop. No-op unless our recording is still running."""
        if self._handle is None or not self.recorder.is_active(self._handle):
            return False
        try:
            return bool(self.recorder.stop(self._handle))
        except RecorderError as e:
            self.fail(e)
            return False

    def reset(self):
        """Cancel whatever is running and force IDLE, releasing recorder resources."""
        phase = self.state.phase
        self._release_resources()
        if phase is not SessionPhase.IDLE:
            logger.info("Session reset from %s", phase.value)
            self._set_phase(SessionPhase.IDLE)

    # --- notifications ---

    def notify(self, event: Notification) -> bool:
        """Apply one notification. Returns False if it was stale and discarded."""
        try:
            self._dispatch(event)
        except StaleNotification as e:
            logger.debug("Discarding stale notification: %s", e)
            return False
        return True

    def _dispatch(self, event: Notification):
        phase = self.state.phase

        if isinstance(event, ResetRequested):
            self.reset()

        elif isinstance(event, ManualStart):
            if phase is not SessionPhase.IDLE:
                raise StaleNotification(f"manual start while {phase.value}")
            self._begin_countdown("manual start")

        elif isinstance(event, RecordingStopped):
            if phase is not SessionPhase.RECORDING or event.handle != self._handle:
                self._discard_asset(event.asset)
                raise StaleNotification(f"recording stopped while {phase.value}")
            self._handle = None
            if event.asset is None:
                self.fail(RecorderError("recorder stopped without producing a clip"))
                return
            self._asset = event.asset
            self._set_phase(SessionPhase.TRANSITION, transition_progress=1.0)

        elif isinstance(event, RecordingFailed):
            if phase is not SessionPhase.RECORDING or event.handle != self._handle:
                raise StaleNotification(f"recording failed while {phase.value}")
            self._handle = None
            self.fail(event.error)

        elif isinstance(event, PlaybackEnded):
            if phase is not SessionPhase.PLAYBACK or event.asset is not self._asset:
                raise StaleNotification(f"playback ended while {phase.value}")
            self._release_resources()
            self._set_phase(SessionPhase.IDLE)
            for cb in self._idle_callbacks:
                cb()

        else:
            raise StaleNotification(f"unknown notification {event!r}")

    # --- internals ---

    def _begin_countdown(self, reason: str):
        logger.info("Session starting (%s)", reason)
        self._set_phase(SessionPhase.COUNTDOWN, countdown_remaining=self.config.countdown_duration)

    def _set_phase(self, phase: SessionPhase, **scalars: float):
        old = self.state.phase
        self.state = SessionState(phase=phase, **scalars)
        if old is not phase:
            logger.info("Session %s → %s", old.value, phase.value)
            for cb in self._phase_callbacks:
                cb(old, phase)

    def _release_resources(self):
        if self._handle is not None:
            try:
                self.recorder.cancel()
            except RecorderError as e:
                logger.warning("Recorder cancel failed: %s", e)
            self._handle = None
        if self._asset is not None:
            self._discard_asset(self._asset)
            self._asset = None

    @staticmethod
    def _discard_asset(asset):
        release = getattr(asset, "release", None)
        if release is not None:
            release()

    def fail(self, error: ReplayError):
        """Report a failure to the error callbacks and force IDLE."""
        logger.error("Session failed in %s: %s", self.state.phase.value, error)
        self.last_error = error
        self._release_resources()
        self._set_phase(SessionPhase.IDLE)
        for cb in self._error_callbacks:
            cb(error)
