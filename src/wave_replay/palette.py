"""Hue-range palettes and silhouette point coloring.

The active palette is an index into a fixed list of ten hue ranges. The
vertical wave swaps it for a different random one, at most once every
`palette_cooldown` seconds.

Coloring: the centroid of all motion points is treated as the body center.
Points near it take the palette's end hue; points farther out (hands,
fingers) shift toward the start hue.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger("wave_replay.palette")


@dataclass(frozen=True)
class Palette:
    """A hue range in degrees. The range may wrap past 360."""
    start_hue: float
    end_hue: float
    name: str = ""

    @property
    def hue_span(self) -> float:
        """Signed shortest span from start to end hue, within [-180, 180]."""
        span = self.end_hue - self.start_hue
        if span > 180:
            span -= 360
        if span < -180:
            span += 360
        return span


PALETTES: tuple[Palette, ...] = (
    Palette(0, 60, "red-yellow"),
    Palette(40, 140, "orange-green"),
    Palette(120, 220, "green-blue"),
    Palette(200, 300, "blue-magenta"),
    Palette(260, 360, "purple-red"),
    Palette(300, 60, "magenta-yellow"),
    Palette(180, 300, "cyan-magenta"),
    Palette(20, 200, "warm-cool"),
    Palette(80, 260, "lime-purple"),
    Palette(330, 90, "pink-orange"),
)


@dataclass
class ColoredPoints:
    """Motion points with their per-point hue.

    xy: (N, 2) normalized positions.
    dist_norm: (N,) distance from the motion center, scaled and capped at 1.
    hue: (N,) degrees in [0, 360).
    """
    xy: np.ndarray
    dist_norm: np.ndarray
    hue: np.ndarray

    def __len__(self) -> int:
        return len(self.xy)

    @classmethod
    def empty(cls) -> ColoredPoints:
        return cls(
            xy=np.zeros((0, 2), dtype=np.float32),
            dist_norm=np.zeros(0, dtype=np.float32),
            hue=np.zeros(0, dtype=np.float32),
        )


def color_points(points: np.ndarray, palette: Palette, spread: float = 6.0) -> ColoredPoints:
    """Assign hues to motion points by distance from their centroid."""
    if len(points) == 0:
        return ColoredPoints.empty()

    xy = np.asarray(points, dtype=np.float32)
    center = xy.mean(axis=0)
    dist = np.linalg.norm(xy - center, axis=1)
    t = np.minimum(1.0, dist * spread)

    hue = (palette.start_hue + (1.0 - t) * palette.hue_span + 360.0) % 360.0
    return ColoredPoints(
        xy=xy,
        dist_norm=t.astype(np.float32),
        hue=hue.astype(np.float32),
    )


class PaletteSelector:
    """Cooldown-gated random palette switching.

    Every accepted pick lands on a palette other than the active one.
    """

    def __init__(
        self,
        palettes: tuple[Palette, ...] = PALETTES,
        cooldown: float = 0.4,
        rng: Optional[np.random.Generator] = None,
        initial_index: int = 0,
    ):
        if len(palettes) < 2:
            raise ValueError("need at least two palettes to switch between")
        if not 0 <= initial_index < len(palettes):
            raise ValueError(f"initial_index {initial_index} out of range")
        self.palettes = palettes
        self.cooldown = cooldown
        self._rng = rng or np.random.default_rng()
        self._index = initial_index
        self._last_change: Optional[float] = None

    @property
    def index(self) -> int:
        return self._index

    @property
    def active(self) -> Palette:
        return self.palettes[self._index]

    def pick_random_palette(self, now: Optional[float] = None) -> bool:
        """Switch to a random different palette. Returns False during cooldown."""
        now = now if now is not None else time.monotonic()
        if self._last_change is not None and now - self._last_change < self.cooldown:
            return False

        # Uniform over the other n-1 indices
        idx = int(self._rng.integers(len(self.palettes) - 1))
        if idx >= self._index:
            idx += 1

        self._index = idx
        self._last_change = now
        logger.info("Palette changed to %d (%s)", idx, self.active.name)
        return True
