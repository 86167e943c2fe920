"""Wave gesture classification from motion-field centroids.

Two independent detectors share the same shape: gate out weak or sparse
motion, track the motion centroid along one axis over a short time window,
then decide from the spread of that history.

- Horizontal wave: large left/right sweep with at least four reversals,
  debounced by a cooldown. Starts a recording session.
- Vertical wave: any large up/down spread. Changes the color palette, so it
  is deliberately permissive (no cooldown, no reversal count).

Usage:
    classifier = GestureClassifier()
    # In frame loop:
    if classifier.detect_vertical_wave(field, now):
        palettes.pick_random_palette(now)
    if classifier.detect_horizontal_wave(field, now):
        ...
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Iterator, Optional

from wave_replay.config import ReplayConfig
from wave_replay.motion import MotionField

logger = logging.getLogger("wave_replay.classifier")


@dataclass(frozen=True)
class HistoryEntry:
    """One centroid coordinate sampled at a point in time."""
    time: float
    value: float


class TimedHistory:
    """Time-windowed rolling history, pruned lazily from the front.

    Entries stay in non-decreasing time order; an entry expires once
    `now - window` has reached its timestamp.
    """

    def __init__(self, window: float):
        self.window = window
        self._entries: deque[HistoryEntry] = deque()

    def append(self, now: float, value: float):
        if self._entries and now < self._entries[-1].time:
            raise ValueError(
                f"history timestamps must not go backwards ({now} < {self._entries[-1].time})"
            )
        self._entries.append(HistoryEntry(now, value))
        self.prune(now)

    def prune(self, now: float):
        cutoff = now - self.window
        while self._entries and self._entries[0].time <= cutoff:
            self._entries.popleft()

    def value_range(self) -> float:
        if not self._entries:
            return 0.0
        values = [e.value for e in self._entries]
        return max(values) - min(values)

    def direction_changes(self, jitter: float) -> int:
        """Count sign reversals between consecutive significant steps.

        Steps smaller than `jitter` are skipped, but still move the
        reference point forward.
        """
        changes = 0
        last_sign = 0
        it = iter(self._entries)
        first = next(it, None)
        if first is None:
            return 0

        last_value = first.value
        for entry in it:
            delta = entry.value - last_value
            last_value = entry.value
            if abs(delta) < jitter:
                continue
            sign = 1 if delta > 0 else -1
            if last_sign != 0 and sign != last_sign:
                changes += 1
            last_sign = sign
        return changes

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self._entries)


class GestureClassifier:
    """Classifies horizontal and vertical waves from per-tick motion fields.

    Each detector is called once per tick. Timestamps are seconds on any
    monotonic clock; they default to `time.monotonic()`.
    """

    def __init__(self, config: Optional[ReplayConfig] = None):
        self.config = config or ReplayConfig()
        self.horizontal = TimedHistory(self.config.horizontal_window)
        self.vertical = TimedHistory(self.config.vertical_window)
        self._last_wave: Optional[float] = None

    @property
    def last_wave_time(self) -> Optional[float]:
        return self._last_wave

    def detect_horizontal_wave(self, field: MotionField, now: Optional[float] = None) -> bool:
        """True when the centroid swept left/right widely with enough reversals."""
        cfg = self.config
        now = now if now is not None else time.monotonic()
        self.horizontal.prune(now)

        if field.strength < cfg.horizontal_min_strength:
            return False
        if len(field.points) < cfg.horizontal_min_points:
            return False

        centroid_x = float(field.points[:, 0].mean())
        self.horizontal.append(now, centroid_x)

        if len(self.horizontal) < cfg.horizontal_min_entries:
            return False

        spread = self.horizontal.value_range()
        dir_changes = self.horizontal.direction_changes(cfg.horizontal_jitter)

        if spread <= cfg.horizontal_min_range or dir_changes < cfg.horizontal_min_dir_changes:
            return False

        # Cooldown
        if self._last_wave is not None and now - self._last_wave <= cfg.horizontal_cooldown:
            return False

        self._last_wave = now
        logger.info(
            "Horizontal wave detected (range=%.2f, direction changes=%d)",
            spread, dir_changes,
        )
        return True

    def detect_vertical_wave(self, field: MotionField, now: Optional[float] = None) -> bool:
        """True when the centroid spread vertically beyond the minimum range."""
        cfg = self.config
        now = now if now is not None else time.monotonic()
        self.vertical.prune(now)

        if field.strength < cfg.vertical_min_strength:
            return False
        if len(field.points) < cfg.vertical_min_points:
            return False

        centroid_y = float(field.points[:, 1].mean())
        self.vertical.append(now, centroid_y)

        if len(self.vertical) < cfg.vertical_min_entries:
            return False

        return self.vertical.value_range() > cfg.vertical_min_range

    def reset(self):
        """Clear both histories so a fresh wave is needed. The cooldown survives."""
        self.horizontal.clear()
        self.vertical.clear()
