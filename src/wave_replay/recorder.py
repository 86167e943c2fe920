"""Silhouette recording and replay.

The recorder captures every rendered silhouette frame while a recording is
active and, when a file output directory is configured, streams them into
an OpenCV video file as well. Stopping is asynchronous: the file is
finalized on a worker thread, and only then is a RecordingStopped
notification posted with the playable clip (or RecordingFailed if the
clip could not be built).

Usage:
    notifications = NotificationQueue()
    recorder = SilhouetteRecorder(notifications.post, fps=30, output_dir="clips")
    handle = recorder.start(surface)
    # In your frame loop:
    recorder.capture(surface.image)
    # When the timer runs out:
    recorder.stop(handle)
    # ... some ticks later, RecordingStopped(handle, clip) is drained
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

import cv2
import numpy as np

from wave_replay.errors import CapabilityUnavailable, RecorderError
from wave_replay.events import Notification, PlaybackEnded, RecordingFailed, RecordingStopped

logger = logging.getLogger("wave_replay.recorder")

# Tried in order until a writer opens
DEFAULT_CODECS: tuple[tuple[str, str], ...] = (
    ("mp4v", ".mp4"),
    ("XVID", ".avi"),
    ("MJPG", ".avi"),
)

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class RecordingHandle:
    """Identifies one recording from start to RecordingStopped."""
    id: int
    started_at: float
    size: tuple[int, int]  # (width, height)
    path: Optional[Path] = None


class RecordedClip:
    """A finished recording that can be replayed frame by frame.

    `play()` rewinds and starts playback; `advance(dt)` moves the playhead and
    returns the frame to show. Reaching the end posts PlaybackEnded once.
    """

    def __init__(
        self,
        frames: list[np.ndarray],
        fps: float,
        path: Optional[Path] = None,
        notify: Optional[Callable[[Notification], None]] = None,
    ):
        if fps <= 0:
            raise ValueError("fps must be positive")
        self._frames = frames
        self.fps = fps
        self.path = path
        self._notify = notify
        self._playing = False
        self._position = 0.0
        self._released = False

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        return len(self._frames) / self.fps

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def released(self) -> bool:
        return self._released

    def play(self):
        """Start playing from the first frame."""
        if self._released:
            raise RecorderError("clip has been released")
        self._position = 0.0
        self._playing = True
        logger.info("Playing clip (%d frames, %.1fs)", self.frame_count, self.duration)

    def advance(self, dt: float) -> Optional[np.ndarray]:
        """Move the playhead by dt seconds and return the frame to display."""
        if not self._playing:
            return None
        if not self._frames:
            self._finish()
            return None

        index = int(self._position * self.fps)
        self._position += dt
        if index >= len(self._frames):
            self._finish()
            return self._frames[-1]
        return self._frames[index]

    def _finish(self):
        self._playing = False
        if self._notify is not None:
            self._notify(PlaybackEnded(self))

    def stop(self):
        self._playing = False

    def release(self):
        """Drop the frame buffer. A released clip cannot be played again."""
        self._playing = False
        self._frames = []
        self._released = True

    def frames(self) -> Iterator[np.ndarray]:
        return iter(self._frames)

    def get_frame(self, index: int) -> Optional[np.ndarray]:
        if 0 <= index < len(self._frames):
            return self._frames[index]
        return None

    def save_compact(self, path: str | Path) -> Path:
        """Save frames losslessly as a compressed numpy archive."""
        path = Path(path).with_suffix(".npz")
        path.parent.mkdir(parents=True, exist_ok=True)
        if self._frames:
            stack = np.stack(self._frames)
        else:
            stack = np.zeros((0, 1, 1, 3), dtype=np.uint8)
        np.savez_compressed(path, frames=stack, fps=np.array([self.fps], dtype=np.float32))
        return path

    @classmethod
    def load(
        cls,
        path: str | Path,
        notify: Optional[Callable[[Notification], None]] = None,
        fps: Optional[float] = None,
    ) -> RecordedClip:
        """Load a clip from a .npz archive or any video file OpenCV can read."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)

        if path.suffix == ".npz":
            data = np.load(path, allow_pickle=False)
            frames = [f for f in data["frames"]]
            return cls(frames, fps or float(data["fps"][0]), path=path, notify=notify)

        cap = cv2.VideoCapture(str(path))
        if not cap.isOpened():
            raise RecorderError(f"cannot open video file {path}")
        try:
            file_fps = cap.get(cv2.CAP_PROP_FPS)
            frames = []
            while True:
                ok, frame = cap.read()
                if not ok:
                    break
                frames.append(frame)
        finally:
            cap.release()

        if not file_fps or file_fps != file_fps or file_fps < 1:
            file_fps = 30.0
        return cls(frames, fps or float(file_fps), path=path, notify=notify)


class SilhouetteRecorder:
    """Records rendered surfaces into clips, optionally mirrored to a video file.

    Args:
        notify: Called with RecordingStopped, RecordingFailed and PlaybackEnded.
            May be invoked from the finalizer thread, so it must be
            thread-safe (NotificationQueue.post is).
        fps: Frame rate written to the file and used for playback.
        output_dir: Where video files go. None keeps recordings in memory only.
        codecs: (fourcc, suffix) pairs tried in order when opening the writer.
        save_compact: Also save each finished clip as a lossless .npz next to
            the video file. Only applies when output_dir is set.
    """

    def __init__(
        self,
        notify: Callable[[Notification], None],
        fps: float = 30.0,
        output_dir: Optional[str | Path] = None,
        codecs: tuple[tuple[str, str], ...] = DEFAULT_CODECS,
        writer_factory: Callable[..., object] = cv2.VideoWriter,
        save_compact: bool = False,
    ):
        self._notify = notify
        self.fps = fps
        self.output_dir = Path(output_dir) if output_dir else None
        self.codecs = codecs
        self._writer_factory = writer_factory
        self.save_compact = save_compact

        self._handle: Optional[RecordingHandle] = None
        self._frames: list[np.ndarray] = []
        self._writer = None
        self._finalizers: list[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def is_recording(self) -> bool:
        return self._handle is not None

    def is_active(self, handle: Optional[RecordingHandle]) -> bool:
        return handle is not None and handle == self._handle

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def start(self, surface) -> RecordingHandle:
        """Begin recording frames shaped like `surface.image`.

        Raises:
            CapabilityUnavailable: no codec could open a video writer.
            RecorderError: a recording is already running, or the output
                directory or video writer could not be set up.
        """
        if self._handle is not None:
            raise RecorderError("a recording is already in progress")

        image = surface.image
        height, width = image.shape[:2]

        path = None
        if self.output_dir is not None:
            try:
                self._writer, path = self._open_writer(width, height)
            except (OSError, cv2.error) as e:
                raise RecorderError(f"cannot open video output in {self.output_dir}: {e}") from e

        self._frames = []
        self._handle = RecordingHandle(
            id=next(_handle_ids),
            started_at=time.monotonic(),
            size=(width, height),
            path=path,
        )
        logger.info("Recorder started (%dx%d @ %.0f fps, file=%s)", width, height, self.fps, path)
        return self._handle

    def _open_writer(self, width: int, height: int):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        for fourcc, suffix in self.codecs:
            path = self.output_dir / f"replay_{stamp}{suffix}"
            writer = self._writer_factory(
                str(path), cv2.VideoWriter_fourcc(*fourcc), self.fps, (width, height)
            )
            if writer.isOpened():
                return writer, path
            logger.warning("Codec %s unavailable, trying next", fourcc)
            writer.release()

        raise CapabilityUnavailable(
            "no supported video codec: tried " + ", ".join(c for c, _ in self.codecs)
        )

    def capture(self, image: np.ndarray):
        """Append one rendered frame. Ignored when not recording."""
        if self._handle is None:
            return

        width, height = self._handle.size
        if image.shape[1] != width or image.shape[0] != height:
            image = cv2.resize(image, (width, height))
        frame = image.copy()
        self._frames.append(frame)
        if self._writer is not None:
            self._writer.write(frame)

    def stop(self, handle: Optional[RecordingHandle]) -> bool:
        """Stop `handle` and finalize asynchronously.

        Returns False without doing anything if that recording is not the
        active one, so repeated stops are harmless.
        """
        if not self.is_active(handle):
            return False

        frames, writer = self._frames, self._writer
        self._handle, self._frames, self._writer = None, [], None

        thread = threading.Thread(
            target=self._finalize,
            args=(handle, frames, writer),
            name=f"recorder-finalize-{handle.id}",
            daemon=True,
        )
        with self._lock:
            self._finalizers = [t for t in self._finalizers if t.is_alive()]
            self._finalizers.append(thread)
        thread.start()
        logger.info("Recorder stopping (%d frames)", len(frames))
        return True

    def _finalize(self, handle: RecordingHandle, frames: list[np.ndarray], writer):
        # Always posts exactly one of RecordingStopped / RecordingFailed
        try:
            path = handle.path
            if writer is not None:
                try:
                    writer.release()
                except (OSError, cv2.error) as e:
                    logger.warning("Video file %s not finalized, keeping clip in memory: %s", path, e)
                    path = None

            clip = RecordedClip(frames, self.fps, path=path, notify=self._notify)
            if self.save_compact and handle.path is not None:
                try:
                    saved = clip.save_compact(handle.path)
                    logger.info("Saved %s", saved)
                except OSError as e:
                    logger.warning("Could not save compact clip: %s", e)
        except Exception as e:
            logger.exception("Recording %d failed to finalize", handle.id)
            self._notify(RecordingFailed(handle, RecorderError(f"finalize failed: {e}")))
            return

        self._notify(RecordingStopped(handle, clip))
        logger.debug("Recording %d finalized", handle.id)

    def cancel(self):
        """Drop the active recording without producing a clip."""
        if self._handle is None:
            return
        logger.info("Recording %d cancelled", self._handle.id)
        writer = self._writer
        self._handle, self._frames, self._writer = None, [], None
        if writer is not None:
            try:
                writer.release()
            except (OSError, cv2.error) as e:
                raise RecorderError(f"cannot release video writer: {e}") from e

    def wait(self, timeout: Optional[float] = None):
        """Block until every pending finalization has posted its notification."""
        with self._lock:
            pending = list(self._finalizers)
        for thread in pending:
            thread.join(timeout)

    def close(self):
        self.cancel()
        self.wait(timeout=5.0)
