"""Per-tick pipeline: frame → motion field → gestures → palette → session.

`advance()` is the tick entry point for the core. It takes an explicitly
owned SessionContext plus one tick's motion field and notifications, and
returns what the renderer needs. It touches no global state, so the whole
core can be driven from tests with synthetic fields and fake recorders.

`ReplayEngine` wires the real collaborators around it: camera, grid
sampler, renderer, recorder and the notification queue.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import cv2
import numpy as np

from wave_replay.camera import CameraSource
from wave_replay.classifier import GestureClassifier
from wave_replay.config import ReplayConfig
from wave_replay.errors import DeviceAcquisitionFailed, RecorderError, ReplayError
from wave_replay.events import ManualStart, Notification, NotificationQueue, ResetRequested
from wave_replay.motion import GridSampler, MotionField, MotionFieldExtractor
from wave_replay.palette import ColoredPoints, PaletteSelector, color_points
from wave_replay.recorder import SilhouetteRecorder
from wave_replay.renderer import SilhouetteRenderer
from wave_replay.session import SessionPhase, SessionState, SessionStateMachine

logger = logging.getLogger("wave_replay.engine")


@dataclass
class TickResult:
    """Everything one tick produced."""
    state: SessionState
    palette_index: int
    colored_points: ColoredPoints
    horizontal_wave: bool = False
    vertical_wave: bool = False
    palette_changed: bool = False


class SessionContext:
    """All mutable core state of one session, owned by the caller.

    Playback ending clears the gesture histories, so the wave that started
    the session cannot immediately start another one.
    """

    def __init__(
        self,
        recorder,
        surface=None,
        config: Optional[ReplayConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or ReplayConfig()
        self.classifier = GestureClassifier(self.config)
        self.palettes = PaletteSelector(cooldown=self.config.palette_cooldown, rng=rng)
        self.machine = SessionStateMachine(recorder, surface=surface, config=self.config)
        self.machine.on_return_to_idle(self.classifier.reset)

    @property
    def state(self) -> SessionState:
        return self.machine.state

    @property
    def phase(self) -> SessionPhase:
        return self.machine.phase


def advance(
    context: SessionContext,
    dt: float,
    field: MotionField,
    now: Optional[float] = None,
    events: Iterable[Notification] = (),
) -> TickResult:
    """Run one tick of the core in fixed order.

    Both wave detectors run every tick. The vertical wave may change the
    palette in any phase; the horizontal wave only matters while idle.
    """
    now = now if now is not None else time.monotonic()

    vertical = context.classifier.detect_vertical_wave(field, now)
    horizontal = context.classifier.detect_horizontal_wave(field, now)

    palette_changed = False
    if vertical:
        palette_changed = context.palettes.pick_random_palette(now)

    state = context.machine.advance(
        dt,
        horizontal_wave=horizontal and context.machine.phase is SessionPhase.IDLE,
        events=events,
    )

    return TickResult(
        state=state.snapshot(),
        palette_index=context.palettes.index,
        colored_points=color_points(field.points, context.palettes.active),
        horizontal_wave=horizontal,
        vertical_wave=vertical,
        palette_changed=palette_changed,
    )


class ReplayEngine:
    """Runs the live loop around the core.

    Per tick: drain notifications, read and sample a frame, extract motion,
    `advance()`, render, feed the art surface to the recorder while it
    records, and step the clip while it plays.
    """

    WINDOW_NAME = "WaveReplay"

    def __init__(
        self,
        config: Optional[ReplayConfig] = None,
        source: Optional[CameraSource] = None,
        recorder: Optional[SilhouetteRecorder] = None,
        renderer: Optional[SilhouetteRenderer] = None,
        sampler: Optional[GridSampler] = None,
        notifications: Optional[NotificationQueue] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = (config or ReplayConfig()).validate()
        cfg = self.config

        self.notifications = notifications if notifications is not None else NotificationQueue()
        self.source = source or CameraSource(
            cfg.camera_index, cfg.camera_width, cfg.camera_height, cfg.fps
        )
        self.sampler = sampler or GridSampler()
        self.extractor = MotionFieldExtractor(cfg.grid_width, cfg.grid_height, cfg.motion_threshold)
        self.renderer = renderer or SilhouetteRenderer(
            cfg.camera_width, cfg.camera_height, max_points=cfg.max_drawn_points
        )
        self.recorder = recorder or SilhouetteRecorder(
            self.notifications.post,
            fps=cfg.fps,
            output_dir=cfg.output_dir,
            save_compact=cfg.save_compact,
        )
        self.context = SessionContext(self.recorder, surface=self.renderer.art, config=cfg, rng=rng)

        self._error_callbacks: list[Callable[[ReplayError], None]] = []
        self.context.machine.on_error(self._report)
        self._last_tick: Optional[float] = None
        self._running = False
        self.total_ticks = 0
        self.last_result: Optional[TickResult] = None

    def on_error(self, callback: Callable[[ReplayError], None]):
        """Register a callback for reported failures (capability, device, recorder)."""
        self._error_callbacks.append(callback)

    def _report(self, error: ReplayError):
        for cb in self._error_callbacks:
            cb(error)

    @property
    def phase(self) -> SessionPhase:
        return self.context.phase

    # --- commands ---

    def open(self) -> bool:
        """Acquire the camera. Reports and returns False on failure."""
        try:
            self.source.open()
        except DeviceAcquisitionFailed as e:
            logger.error("Camera unavailable: %s", e)
            self.context.machine.fail(e)
            return False
        return True

    def request_start(self) -> bool:
        """Manual alternative to waving. Opens the camera first if needed."""
        if self.phase is not SessionPhase.IDLE:
            return False
        if not self.open():
            return False
        self.notifications.post(ManualStart())
        return True

    def reset(self):
        """Abort the running session at the next tick boundary."""
        self.notifications.post(ResetRequested())

    # --- loop ---

    def tick(self, dt: Optional[float] = None, now: Optional[float] = None) -> TickResult:
        now = now if now is not None else time.monotonic()
        if dt is None:
            dt = 0.0 if self._last_tick is None else now - self._last_tick
        self._last_tick = now

        events = self.notifications.drain()

        frame = self.source.read()
        grid = None
        if frame is not None:
            try:
                grid = self.sampler.sample(frame, self.config.grid_width, self.config.grid_height)
            except (ValueError, cv2.error) as e:
                logger.warning("Dropping unusable frame: %s", e)
        field = self.extractor.extract(grid)

        result = advance(self.context, dt, field, now=now, events=events)

        if result.state.phase is SessionPhase.PLAYBACK and self.context.machine.asset is not None:
            self.renderer.draw_frame(self.context.machine.asset.advance(dt))
        else:
            self.renderer.draw_silhouette(result.colored_points)

        self.renderer.compose(result.state, dt)

        if self.recorder.is_recording:
            try:
                self.recorder.capture(self.renderer.art.image)
            except (RecorderError, cv2.error) as e:
                logger.error("Frame capture failed: %s", e)
                self.context.machine.fail(RecorderError(str(e)))

        self.total_ticks += 1
        self.last_result = result
        return result

    def run(self, display: bool = True, duration: float = 0.0):
        """Tick until stopped, `q`/Esc is pressed, or `duration` seconds pass."""
        self.open()
        self._running = True
        start = time.monotonic()
        frame_time = 1.0 / self.config.fps

        try:
            while self._running:
                t0 = time.monotonic()
                self.tick()

                if display:
                    cv2.imshow(self.WINDOW_NAME, self.renderer.ui.image)
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord("q"), 27):
                        break
                    if key == ord(" "):
                        self.request_start()
                    elif key == ord("r"):
                        self.reset()

                if duration > 0 and time.monotonic() - start >= duration:
                    break

                spare = frame_time - (time.monotonic() - t0)
                if spare > 0:
                    time.sleep(spare)
        except KeyboardInterrupt:
            pass
        finally:
            self._running = False
            if display:
                cv2.destroyAllWindows()

    def stop(self):
        self._running = False

    def close(self):
        """Release camera, recorder and any playing clip."""
        self._running = False
        self.context.machine.reset()
        self.recorder.close()
        self.source.release()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
