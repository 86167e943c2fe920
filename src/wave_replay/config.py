"""Session configuration: every tunable constant in one dataclass.

Defaults match the values the gesture heuristics were tuned with.
Load overrides from YAML:

    config = ReplayConfig.from_yaml("replay.yml")
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class ReplayConfig:
    # ---- camera / sampling ---------------------------------------------
    camera_index: int = 0
    camera_width: int = 640
    camera_height: int = 480
    fps: int = 30
    grid_width: int = 240
    grid_height: int = 180

    # ---- motion field --------------------------------------------------
    motion_threshold: float = 18.0

    # ---- horizontal wave (starts a session) ----------------------------
    horizontal_min_strength: float = 0.12
    horizontal_min_points: int = 220
    horizontal_window: float = 0.8
    horizontal_min_entries: int = 10
    horizontal_min_range: float = 0.6
    horizontal_min_dir_changes: int = 4
    horizontal_jitter: float = 0.03
    horizontal_cooldown: float = 1.8

    # ---- vertical wave (changes palette) -------------------------------
    vertical_min_strength: float = 0.10
    vertical_min_points: int = 180
    vertical_window: float = 0.7
    vertical_min_entries: int = 8
    vertical_min_range: float = 0.22

    # ---- palette -------------------------------------------------------
    palette_cooldown: float = 0.4

    # ---- session timing (seconds) --------------------------------------
    countdown_duration: float = 3.0
    recording_duration: float = 3.0
    transition_duration: float = 0.8

    # ---- output --------------------------------------------------------
    output_dir: Optional[str] = None
    save_compact: bool = False  # also write a lossless .npz per clip
    max_drawn_points: int = 1000

    MOTION_THRESHOLD_RANGE = (18.0, 25.0)

    def validate(self) -> ReplayConfig:
        """Raise ValueError on values the session cannot run with."""
        lo, hi = self.MOTION_THRESHOLD_RANGE
        if not lo <= self.motion_threshold <= hi:
            raise ValueError(
                f"motion_threshold must be within [{lo}, {hi}], got {self.motion_threshold}"
            )
        if self.grid_width <= 0 or self.grid_height <= 0:
            raise ValueError("grid dimensions must be positive")
        for name in (
            "horizontal_window",
            "vertical_window",
            "countdown_duration",
            "recording_duration",
            "transition_duration",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("horizontal_cooldown", "palette_cooldown"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.fps <= 0:
            raise ValueError("fps must be positive")
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> ReplayConfig:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known}).validate()

    @classmethod
    def from_yaml(cls, path: str | Path) -> ReplayConfig:
        """Load a config file; missing keys keep their defaults."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def dump_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)
