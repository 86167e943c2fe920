"""Tests for silhouette recording and clip playback."""

from types import SimpleNamespace

import numpy as np
import pytest

from wave_replay.errors import CapabilityUnavailable, RecorderError
from wave_replay.events import NotificationQueue, PlaybackEnded, RecordingFailed, RecordingStopped
from wave_replay.recorder import RecordedClip, RecordingHandle, SilhouetteRecorder


def make_surface(w=32, h=24):
    return SimpleNamespace(image=np.zeros((h, w, 3), dtype=np.uint8))


def frame(value, w=32, h=24):
    return np.full((h, w, 3), value, dtype=np.uint8)


class FakeWriter:
    instances = []

    def __init__(self, path, fourcc, fps, size, opens=True):
        self.path = path
        self.size = size
        self.opens = opens
        self.written = 0
        self.released = False
        FakeWriter.instances.append(self)

    def isOpened(self):
        return self.opens

    def write(self, image):
        self.written += 1

    def release(self):
        self.released = True


@pytest.fixture(autouse=True)
def clear_writers():
    FakeWriter.instances = []


class TestSilhouetteRecorder:
    def test_start_capture_stop(self):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post, fps=10)
        handle = rec.start(make_surface())

        assert isinstance(handle, RecordingHandle)
        assert rec.is_recording
        assert rec.is_active(handle)
        assert handle.size == (32, 24)

        for i in range(5):
            rec.capture(frame(i))
        assert rec.frame_count == 5

        assert rec.stop(handle) is True
        assert not rec.is_recording
        rec.wait(timeout=5.0)

        events = queue.drain()
        assert len(events) == 1
        event = events[0]
        assert isinstance(event, RecordingStopped)
        assert event.handle == handle
        assert event.asset.frame_count == 5
        assert event.asset.fps == 10

    def test_repeated_stop_is_noop(self):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post)
        handle = rec.start(make_surface())
        assert rec.stop(handle) is True
        assert rec.stop(handle) is False
        rec.wait(timeout=5.0)
        assert len(queue.drain()) == 1

    def test_stop_unknown_handle(self):
        rec = SilhouetteRecorder(NotificationQueue().post)
        rec.start(make_surface())
        other = RecordingHandle(id=-1, started_at=0.0, size=(1, 1))
        assert rec.stop(other) is False
        assert rec.stop(None) is False
        assert rec.is_recording

    def test_capture_ignored_when_idle(self):
        rec = SilhouetteRecorder(NotificationQueue().post)
        rec.capture(frame(1))
        assert rec.frame_count == 0

    def test_capture_resizes_to_recording_size(self):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post)
        handle = rec.start(make_surface(32, 24))
        rec.capture(frame(7, w=64, h=48))
        rec.stop(handle)
        rec.wait(timeout=5.0)
        clip = queue.drain()[0].asset
        assert clip.get_frame(0).shape == (24, 32, 3)

    def test_capture_copies_frame(self):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post)
        handle = rec.start(make_surface())
        image = frame(10)
        rec.capture(image)
        image[:] = 99
        rec.stop(handle)
        rec.wait(timeout=5.0)
        assert queue.drain()[0].asset.get_frame(0)[0, 0, 0] == 10

    def test_double_start_raises(self):
        rec = SilhouetteRecorder(NotificationQueue().post)
        rec.start(make_surface())
        with pytest.raises(RecorderError):
            rec.start(make_surface())

    def test_cancel_posts_nothing(self):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post)
        handle = rec.start(make_surface())
        rec.capture(frame(1))
        rec.cancel()
        assert not rec.is_active(handle)
        assert rec.stop(handle) is False
        rec.wait(timeout=5.0)
        assert queue.drain() == []

    def test_writes_video_file(self, tmp_path):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post, output_dir=tmp_path / "clips", writer_factory=FakeWriter)
        handle = rec.start(make_surface())
        for i in range(3):
            rec.capture(frame(i))
        rec.stop(handle)
        rec.wait(timeout=5.0)

        writer = FakeWriter.instances[0]
        assert writer.written == 3
        assert writer.released
        assert handle.path is not None
        assert handle.path.suffix == ".mp4"
        assert (tmp_path / "clips").is_dir()
        assert queue.drain()[0].asset.path == handle.path

    def test_codec_fallback(self, tmp_path):
        def factory(path, fourcc, fps, size):
            # only the last codec opens
            return FakeWriter(path, fourcc, fps, size, opens=len(FakeWriter.instances) == 2)

        rec = SilhouetteRecorder(NotificationQueue().post, output_dir=tmp_path, writer_factory=factory)
        handle = rec.start(make_surface())
        assert len(FakeWriter.instances) == 3
        assert FakeWriter.instances[0].released
        assert FakeWriter.instances[1].released
        assert handle.path.suffix == ".avi"

    def test_no_codec_raises_capability_unavailable(self, tmp_path):
        def factory(path, fourcc, fps, size):
            return FakeWriter(path, fourcc, fps, size, opens=False)

        rec = SilhouetteRecorder(NotificationQueue().post, output_dir=tmp_path, writer_factory=factory)
        with pytest.raises(CapabilityUnavailable):
            rec.start(make_surface())
        assert not rec.is_recording


class TestRecordedClip:
    def make_clip(self, n=3, fps=10):
        queue = NotificationQueue()
        clip = RecordedClip([frame(i) for i in range(n)], fps, notify=queue.post)
        return clip, queue

    def test_duration(self):
        clip, _ = self.make_clip(n=30, fps=10)
        assert clip.frame_count == 30
        assert clip.duration == pytest.approx(3.0)

    def test_not_playing_returns_none(self):
        clip, _ = self.make_clip()
        assert clip.advance(0.1) is None

    def test_plays_through_and_ends_once(self):
        clip, queue = self.make_clip(n=3, fps=10)
        clip.play()

        shown = [clip.advance(0.1)[0, 0, 0] for _ in range(3)]
        assert shown == [0, 1, 2]
        assert queue.drain() == []

        last = clip.advance(0.1)
        assert last[0, 0, 0] == 2
        assert not clip.is_playing

        assert clip.advance(0.1) is None
        events = queue.drain()
        assert events == [PlaybackEnded(clip)]

    def test_empty_clip_ends_immediately(self):
        queue = NotificationQueue()
        clip = RecordedClip([], 30, notify=queue.post)
        clip.play()
        assert clip.advance(0.1) is None
        assert len(queue.drain()) == 1

    def test_release(self):
        clip, _ = self.make_clip()
        clip.release()
        assert clip.released
        assert clip.frame_count == 0
        with pytest.raises(RecorderError):
            clip.play()

    def test_invalid_fps(self):
        with pytest.raises(ValueError):
            RecordedClip([], 0)

    def test_save_and_load_compact(self, tmp_path):
        clip, _ = self.make_clip(n=4, fps=15)
        path = clip.save_compact(tmp_path / "clip")
        assert path.suffix == ".npz"

        loaded = RecordedClip.load(path)
        assert loaded.frame_count == 4
        assert loaded.fps == pytest.approx(15)
        np.testing.assert_array_equal(loaded.get_frame(3), frame(3))

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RecordedClip.load(tmp_path / "nope.npz")

    def test_get_frame_out_of_range(self):
        clip, _ = self.make_clip()
        assert clip.get_frame(-1) is None
        assert clip.get_frame(3) is None


class FailingReleaseWriter(FakeWriter):
    def release(self):
        raise OSError("disk full")


class TestRecorderFailures:
    def test_unwritable_output_dir_raises_recorder_error(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        rec = SilhouetteRecorder(NotificationQueue().post, output_dir=blocker / "clips")
        with pytest.raises(RecorderError):
            rec.start(make_surface())
        assert not rec.is_recording

    def test_writer_release_failure_keeps_clip_in_memory(self, tmp_path):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post, output_dir=tmp_path, writer_factory=FailingReleaseWriter)
        handle = rec.start(make_surface())
        rec.capture(frame(5))
        rec.stop(handle)
        rec.wait(timeout=5.0)

        events = queue.drain()
        assert len(events) == 1
        assert isinstance(events[0], RecordingStopped)
        assert events[0].asset.frame_count == 1
        assert events[0].asset.path is None

    def test_finalize_failure_posts_recording_failed(self, monkeypatch):
        def broken_clip(*args, **kwargs):
            raise MemoryError("no room for frames")

        monkeypatch.setattr("wave_replay.recorder.RecordedClip", broken_clip)
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post)
        handle = rec.start(make_surface())
        rec.stop(handle)
        rec.wait(timeout=5.0)

        events = queue.drain()
        assert len(events) == 1
        assert isinstance(events[0], RecordingFailed)
        assert events[0].handle == handle
        assert isinstance(events[0].error, RecorderError)

    def test_cancel_release_failure_raises_recorder_error(self, tmp_path):
        rec = SilhouetteRecorder(NotificationQueue().post, output_dir=tmp_path,
                                 writer_factory=FailingReleaseWriter)
        rec.start(make_surface())
        with pytest.raises(RecorderError):
            rec.cancel()
        assert not rec.is_recording


class TestCompactOutput:
    def test_saves_npz_next_to_video(self, tmp_path):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post, fps=12, output_dir=tmp_path,
                                 writer_factory=FakeWriter, save_compact=True)
        handle = rec.start(make_surface())
        rec.capture(frame(1))
        rec.capture(frame(2))
        rec.stop(handle)
        rec.wait(timeout=5.0)
        assert isinstance(queue.drain()[0], RecordingStopped)

        saved = handle.path.with_suffix(".npz")
        assert saved.exists()
        loaded = RecordedClip.load(saved)
        assert loaded.frame_count == 2
        assert loaded.fps == pytest.approx(12)

    def test_off_by_default(self, tmp_path):
        queue = NotificationQueue()
        rec = SilhouetteRecorder(queue.post, output_dir=tmp_path, writer_factory=FakeWriter)
        handle = rec.start(make_surface())
        rec.stop(handle)
        rec.wait(timeout=5.0)
        assert not handle.path.with_suffix(".npz").exists()
