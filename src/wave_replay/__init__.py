"""WaveReplay - gesture-driven motion silhouette recording and replay."""

__version__ = "0.1.0"

from wave_replay.config import ReplayConfig
from wave_replay.errors import (
    CapabilityUnavailable,
    DeviceAcquisitionFailed,
    RecorderError,
    ReplayError,
    StaleNotification,
)
from wave_replay.events import (
    ManualStart,
    NotificationQueue,
    PlaybackEnded,
    RecordingFailed,
    RecordingStopped,
    ResetRequested,
)
from wave_replay.motion import GridSampler, MotionField, MotionFieldExtractor, MotionSample
from wave_replay.classifier import GestureClassifier, HistoryEntry, TimedHistory
from wave_replay.palette import PALETTES, ColoredPoints, Palette, PaletteSelector, color_points
from wave_replay.session import SessionPhase, SessionState, SessionStateMachine
from wave_replay.recorder import RecordedClip, RecordingHandle, SilhouetteRecorder
from wave_replay.renderer import SilhouetteRenderer, Surface
from wave_replay.camera import CameraSource
from wave_replay.engine import ReplayEngine, SessionContext, TickResult, advance
