"""OpenCV rendering of the motion silhouette and the session overlays.

Two surfaces are kept apart, mirroring what gets recorded:

- `art`: the glowing silhouette only. This is what the recorder captures.
- `ui`: art plus phase overlays (hints, countdown, timer, REPLAY fade).
  This is what gets shown on screen.

Points are drawn additively so dense motion regions saturate into a glow.
"""

from __future__ import annotations

import math
from typing import Optional

import cv2
import numpy as np

from wave_replay.palette import ColoredPoints
from wave_replay.session import SessionPhase, SessionState

FONT = cv2.FONT_HERSHEY_SIMPLEX
WHITE = (255, 255, 255)


class Surface:
    """A mutable BGR image that collaborators draw to or record from."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.image = np.zeros((height, width, 3), dtype=np.uint8)

    def clear(self):
        self.image[:] = 0

    def blit(self, frame: np.ndarray):
        """Copy a frame onto the surface, scaling it to fit."""
        if frame.shape[:2] != (self.height, self.width):
            frame = cv2.resize(frame, (self.width, self.height))
        self.image[:] = frame[:, :, :3]


def hues_to_bgr(hue: np.ndarray, saturation: int = 255, value: int = 255) -> np.ndarray:
    """Convert hues in degrees to BGR uint8 colors, shape (N, 3)."""
    n = len(hue)
    hsv = np.empty((n, 1, 3), dtype=np.uint8)
    # OpenCV stores 8-bit hue as degrees / 2
    hsv[:, 0, 0] = (np.asarray(hue, dtype=np.float32) / 2.0).astype(np.uint8) % 180
    hsv[:, 0, 1] = saturation
    hsv[:, 0, 2] = value
    return cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR).reshape(n, 3)


class SilhouetteRenderer:
    """Draws colored motion points and session overlays."""

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        max_points: int = 1000,
        glow: bool = True,
    ):
        self.art = Surface(width, height)
        self.ui = Surface(width, height)
        self.max_points = max_points
        self.glow = glow
        self._hint_time = 0.0

    def draw_silhouette(self, colored: ColoredPoints):
        """Render points onto a black art surface."""
        self.art.clear()
        if len(colored) == 0:
            return

        w, h = self.art.width, self.art.height
        step = max(1, len(colored) // self.max_points)
        xy = colored.xy[::step]
        dist = colored.dist_norm[::step]
        colors = hues_to_bgr(colored.hue[::step], value=230)

        base_radius = min(w, h) * 0.012
        layer = np.zeros_like(self.art.image)
        for (x, y), d, color in zip(xy, dist, colors):
            radius = max(1, int(round(base_radius * (0.6 + 1.2 * float(d)))))
            cv2.circle(
                layer,
                (int(x * w), int(y * h)),
                radius,
                tuple(int(c) for c in color),
                thickness=-1,
                lineType=cv2.LINE_AA,
            )

        if self.glow:
            layer = cv2.GaussianBlur(layer, (0, 0), sigmaX=base_radius * 0.5 + 0.5)
        # Additive blend, saturating at 255
        cv2.add(self.art.image, layer, dst=self.art.image)

    def draw_frame(self, frame: Optional[np.ndarray]):
        """Show a recorded frame (playback) instead of the live silhouette."""
        if frame is None:
            return
        self.art.blit(frame)

    def compose(self, state: SessionState, dt: float = 0.0) -> np.ndarray:
        """Copy art to the UI surface and draw the overlay for the current phase."""
        self.ui.image[:] = self.art.image
        phase = state.phase

        if phase is SessionPhase.IDLE:
            self._hint_time += dt
            self._draw_idle_hints(self._hint_time)
        else:
            self._hint_time = 0.0

        if phase is SessionPhase.COUNTDOWN:
            self._draw_countdown(state.countdown_remaining)
        elif phase is SessionPhase.RECORDING:
            self._draw_recording(state.record_remaining)
        elif phase is SessionPhase.TRANSITION:
            self._draw_transition(state.transition_progress)
        return self.ui.image

    # --- overlays ---

    def _shade(self, alpha: float):
        if alpha <= 0:
            return
        img = self.ui.image
        cv2.addWeighted(img, 1.0 - min(1.0, alpha), np.zeros_like(img), 0, 0, dst=img)

    def _centered_text(self, text: str, y: int, scale: float, thickness: int, color=WHITE):
        (tw, th), _ = cv2.getTextSize(text, FONT, scale, thickness)
        x = (self.ui.width - tw) // 2
        cv2.putText(self.ui.image, text, (x, y + th // 2), FONT, scale, color, thickness, cv2.LINE_AA)

    def _draw_idle_hints(self, t: float):
        alpha = min(1.0, t * 0.6)
        if alpha <= 0:
            return
        color = tuple(int(255 * alpha) for _ in range(3))
        h = self.ui.height
        scale = self.ui.width / 1000.0
        self._centered_text("Wave LEFT <-> RIGHT to start recording", int(h * 0.85), scale, 2, color)
        self._centered_text("Wave UP / DOWN to change colors", int(h * 0.90), scale * 0.9, 1, color)

    def _draw_countdown(self, remaining: float):
        self._shade(0.35)
        sec = max(0.0, remaining)
        number = max(1, math.ceil(sec))
        fade = 1.0 - (sec - math.floor(sec))

        w, h = self.ui.width, self.ui.height
        self._centered_text("Record in", h // 2 - int(w * 0.09), w / 500.0, 2)
        color = tuple(int(255 * fade) for _ in range(3))
        self._centered_text(str(number), h // 2 + int(w * 0.04), w / 120.0, 6, color)

    def _draw_recording(self, remaining: float):
        w = self.ui.width
        text = f"Recording: {max(0.0, remaining):.1f}s"
        box_w, box_h, margin = 220, 40, 16
        x, y = w - box_w - margin, margin
        cv2.rectangle(self.ui.image, (x, y), (x + box_w, y + box_h), (102, 51, 255), thickness=-1)
        cv2.circle(self.ui.image, (x + 18, y + box_h // 2), 6, WHITE, thickness=-1, lineType=cv2.LINE_AA)
        cv2.putText(self.ui.image, text, (x + 32, y + box_h // 2 + 6), FONT, 0.55, WHITE, 1, cv2.LINE_AA)

    def _draw_transition(self, progress: float):
        t = max(0.0, min(1.0, progress))
        self._shade(0.5 * t)
        color = tuple(int(255 * t) for _ in range(3))
        self._centered_text("REPLAY", self.ui.height // 2, self.ui.width / 250.0, 8, color)
