"""Motion field extraction from consecutive low-resolution frames.

Each tick the camera frame is rasterized to a small RGB grid. Per-cell
luminance is compared against the previous tick's grid: the mean absolute
change becomes the motion strength, and every cell that changed by more
than the threshold becomes a normalized motion point.

Usage:
    sampler = GridSampler()
    extractor = MotionFieldExtractor(grid_width=240, grid_height=180)
    # In frame loop:
    grid = sampler.sample(frame, 240, 180) if frame is not None else None
    field = extractor.extract(grid)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Sequence

import cv2
import numpy as np

# ITU-R BT.601 luma weights for (r, g, b)
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


class MotionSample(NamedTuple):
    """Normalized grid position of one cell whose luminance changed."""
    x: float
    y: float


def _empty_points() -> np.ndarray:
    return np.zeros((0, 2), dtype=np.float32)


@dataclass
class MotionField:
    """Per-tick motion summary.

    `points` has shape (N, 2) with columns (x, y), in row-major grid order.
    """
    strength: float = 0.0
    points: np.ndarray = field(default_factory=_empty_points)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    def samples(self) -> list[MotionSample]:
        return [MotionSample(float(x), float(y)) for x, y in self.points]

    def centroid(self) -> Optional[tuple[float, float]]:
        """Mean (x, y) of all motion points, or None when there are none."""
        if self.is_empty:
            return None
        cx, cy = self.points.mean(axis=0)
        return float(cx), float(cy)

    @classmethod
    def from_samples(cls, strength: float, samples: Sequence[tuple[float, float]]) -> MotionField:
        if len(samples) == 0:
            return cls(strength=strength)
        return cls(strength=strength, points=np.asarray(samples, dtype=np.float32).reshape(-1, 2))

    @classmethod
    def empty(cls) -> MotionField:
        return cls()


class GridSampler:
    """Rasterizes a camera frame to a fixed low-resolution RGB grid.

    OpenCV frames arrive in BGR order; set `bgr=False` for frames that are
    already RGB.
    """

    def __init__(self, bgr: bool = True, mirror: bool = True):
        self.bgr = bgr
        self.mirror = mirror

    def sample(self, frame: np.ndarray, grid_width: int, grid_height: int) -> np.ndarray:
        """Return an array of shape (grid_height, grid_width, 3), RGB uint8."""
        if frame.ndim != 3 or frame.shape[2] < 3:
            raise ValueError(f"expected a (H, W, 3) color frame, got shape {frame.shape}")

        grid = cv2.resize(frame[:, :, :3], (grid_width, grid_height), interpolation=cv2.INTER_AREA)
        if self.bgr:
            grid = cv2.cvtColor(grid, cv2.COLOR_BGR2RGB)
        if self.mirror:
            grid = cv2.flip(grid, 1)
        return grid


class MotionFieldExtractor:
    """Turns consecutive sample grids into motion fields.

    Owns the previous-luminance buffer for its whole lifetime. The buffer
    starts at zero, so the first real frame reports strong motion.
    """

    def __init__(self, grid_width: int = 240, grid_height: int = 180, threshold: float = 18.0):
        if grid_width <= 0 or grid_height <= 0:
            raise ValueError("grid dimensions must be positive")
        self.grid_width = grid_width
        self.grid_height = grid_height
        self.threshold = threshold
        self._prev_luma = np.zeros((grid_height, grid_width), dtype=np.float32)

        # Normalized cell coordinates, computed once
        self._xs = (np.arange(grid_width, dtype=np.float32) / grid_width)
        self._ys = (np.arange(grid_height, dtype=np.float32) / grid_height)

    @property
    def previous_luminance(self) -> np.ndarray:
        return self._prev_luma

    def extract(self, grid: Optional[np.ndarray]) -> MotionField:
        """Compute the motion field for one tick.

        Args:
            grid: RGB samples, shape (grid_height, grid_width, 3), or None when
                  the frame source has nothing ready.

        Returns:
            MotionField with strength clamped to [0, 1].
        """
        if grid is None:
            return MotionField.empty()

        grid = np.asarray(grid)
        if grid.ndim != 3 or grid.shape[:2] != (self.grid_height, self.grid_width):
            raise ValueError(
                f"grid shape {grid.shape} does not match "
                f"({self.grid_height}, {self.grid_width}, 3)"
            )

        luma = grid[:, :, :3].astype(np.float32) @ LUMA_WEIGHTS
        diff = np.abs(luma - self._prev_luma)

        rows, cols = np.nonzero(diff > self.threshold)
        points = np.column_stack([self._xs[cols], self._ys[rows]]).astype(np.float32)

        strength = float(diff.sum(dtype=np.float64)) / (self.grid_width * self.grid_height * 255.0)
        strength = min(1.0, max(0.0, strength))

        np.copyto(self._prev_luma, luma)
        return MotionField(strength=strength, points=points)

    def reset(self):
        """Forget the previous frame."""
        self._prev_luma.fill(0.0)
