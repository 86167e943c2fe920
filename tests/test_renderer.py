"""Tests for silhouette and overlay rendering."""

import numpy as np
import pytest

from wave_replay.palette import PALETTES, ColoredPoints, color_points
from wave_replay.renderer import SilhouetteRenderer, Surface, hues_to_bgr
from wave_replay.session import SessionPhase, SessionState


def some_points(n=200, seed=0):
    rng = np.random.default_rng(seed)
    return color_points(rng.random((n, 2)).astype(np.float32), PALETTES[0])


class TestSurface:
    def test_blit_scales(self):
        s = Surface(32, 24)
        s.blit(np.full((48, 64, 3), 77, dtype=np.uint8))
        assert s.image.shape == (24, 32, 3)
        assert np.all(s.image == 77)

    def test_clear(self):
        s = Surface(8, 8)
        s.image[:] = 5
        s.clear()
        assert not s.image.any()


class TestHues:
    def test_primary_hues(self):
        bgr = hues_to_bgr(np.array([0.0, 120.0, 240.0]))
        np.testing.assert_array_equal(bgr[0], [0, 0, 255])  # red
        np.testing.assert_array_equal(bgr[1], [0, 255, 0])  # green
        np.testing.assert_array_equal(bgr[2], [255, 0, 0])  # blue

    def test_shape(self):
        assert hues_to_bgr(np.zeros(5)).shape == (5, 3)


class TestSilhouetteRenderer:
    def test_empty_points_leave_black_art(self):
        r = SilhouetteRenderer(64, 48)
        r.art.image[:] = 50
        r.draw_silhouette(ColoredPoints.empty())
        assert not r.art.image.any()

    def test_points_drawn(self):
        r = SilhouetteRenderer(64, 48)
        r.draw_silhouette(some_points())
        assert r.art.image.any()

    def test_subsampling_without_glow(self):
        r = SilhouetteRenderer(64, 48, max_points=10, glow=False)
        r.draw_silhouette(some_points(n=5000))
        assert r.art.image.any()

    def test_draw_frame(self):
        r = SilhouetteRenderer(64, 48)
        r.draw_frame(np.full((48, 64, 3), 9, dtype=np.uint8))
        assert np.all(r.art.image == 9)
        r.draw_frame(None)
        assert np.all(r.art.image == 9)

    @pytest.mark.parametrize("phase", list(SessionPhase))
    def test_compose_every_phase(self, phase):
        r = SilhouetteRenderer(320, 240)
        state = SessionState(
            phase=phase, countdown_remaining=2.4, record_remaining=1.2, transition_progress=0.5
        )
        ui = r.compose(state, dt=1.0)
        assert ui.shape == (240, 320, 3)

    def test_overlays_never_touch_art(self):
        r = SilhouetteRenderer(320, 240)
        for phase in (SessionPhase.COUNTDOWN, SessionPhase.RECORDING, SessionPhase.TRANSITION):
            r.compose(SessionState(phase=phase, countdown_remaining=2.0,
                                   record_remaining=2.0, transition_progress=1.0))
            assert not r.art.image.any()
            assert r.ui.image.any()

    def test_idle_hints_fade_in(self):
        r = SilhouetteRenderer(320, 240)
        r.compose(SessionState(), dt=0.0)
        assert not r.ui.image.any()
        r.compose(SessionState(), dt=1.0)
        assert r.ui.image.any()
