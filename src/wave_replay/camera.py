"""Camera frame source: a thin wrapper around cv2.VideoCapture.

`read()` never raises once the camera is open: a dropped frame or a camera
that is still warming up simply yields None, which the motion extractor
turns into a zero-strength field.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import cv2
import numpy as np

from wave_replay.errors import DeviceAcquisitionFailed

logger = logging.getLogger("wave_replay.camera")


class CameraSource:
    """Frame source backed by an OpenCV capture device."""

    def __init__(
        self,
        device: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        capture_factory: Callable[[int], object] = cv2.VideoCapture,
    ):
        self.device = device
        self.width = width
        self.height = height
        self.fps = fps
        self._capture_factory = capture_factory
        self._cap = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self):
        """Acquire the device. Safe to call again after a failure."""
        if self._cap is not None:
            return

        cap = self._capture_factory(self.device)
        if not cap.isOpened():
            cap.release()
            raise DeviceAcquisitionFailed(f"cannot open camera device {self.device}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cap = cap
        logger.info("Camera %d opened", self.device)

    def read(self) -> Optional[np.ndarray]:
        """Return the current BGR frame, or None when nothing is ready."""
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        return frame if ok else None

    def release(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera %d released", self.device)

    def __enter__(self) -> CameraSource:
        self.open()
        return self

    def __exit__(self, *args):
        self.release()
