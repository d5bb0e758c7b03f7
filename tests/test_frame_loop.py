import threading

import numpy as np
import pytest

from conftest import FakeSource
from filtercam.camera import CameraAborted, CameraBusy
from filtercam.effects import EffectId
from filtercam.frame_loop import FrameProcessingLoop, LoopState


def frames(bgr_frame, count):
    return [bgr_frame.copy() for _ in range(count)]


def filter_id_for(descriptors, effect_id):
    return next(d.id for d in descriptors if d.name == effect_id.value)


def make_loop(registry, source, **kwargs):
    kwargs.setdefault("sleep", lambda delay: None)
    return FrameProcessingLoop(source, registry, **kwargs)


def test_new_loop_is_idle_with_normal_effect(registry):
    loop = make_loop(registry, FakeSource())
    assert loop.state is LoopState.IDLE
    assert loop.active_filter_id is None
    assert loop.active_effect is EffectId.NORMAL
    assert loop.snapshot() is None


def test_run_processes_frames_until_stream_ends(registry, bgr_frame):
    source = FakeSource(frames(bgr_frame, 3))
    loop = make_loop(registry, source)

    loop.run()

    assert loop.frames_processed == 3
    assert loop.state is LoopState.STOPPED
    assert source.stop_calls == 1
    assert not source.is_running


def test_max_frames_stops_early(registry, bgr_frame):
    source = FakeSource(frames(bgr_frame, 5))
    loop = make_loop(registry, source)
    loop.run(max_frames=2)
    assert loop.frames_processed == 2
    assert loop.state is LoopState.STOPPED


def test_normal_surface_matches_camera_frame(registry, bgr_frame):
    loop = make_loop(registry, FakeSource(frames(bgr_frame, 1)))
    loop.run()
    snapshot = loop.snapshot()
    assert snapshot.size == (16, 12)
    assert snapshot.get_pixel(3, 0) == (200, 30, 40, 255)


def test_selected_filter_applies_to_frames(registry, descriptors, bgr_frame):
    bw = filter_id_for(descriptors, EffectId.BLACK_AND_WHITE)
    loop = make_loop(registry, FakeSource(frames(bgr_frame, 2)), filter_id=bw)
    assert loop.active_effect is EffectId.BLACK_AND_WHITE

    loop.run()

    r, g, b, a = loop.snapshot().get_pixel(3, 5)
    assert r == g == b == 90  # (200 + 30 + 40) / 3
    assert a == 255


def test_select_filter_switches_between_frames(registry, descriptors, bgr_frame):
    neon = filter_id_for(descriptors, EffectId.NEON)
    loop = make_loop(registry, FakeSource(frames(bgr_frame, 2)))
    seen = []

    def presenter(buffer):
        seen.append(buffer.get_pixel(0, 0))
        loop.select_filter(neon)

    loop.run(presenter)

    assert seen[0] == (200, 0, 40, 255)
    assert seen[1] == (255, 0, 60, 255)


def test_unknown_filter_id_runs_normal(registry, bgr_frame):
    loop = make_loop(registry, FakeSource(frames(bgr_frame, 1)))
    assert loop.select_filter("flt_missing") is EffectId.NORMAL
    loop.run()
    assert loop.snapshot().get_pixel(0, 0) == (200, 0, 40, 255)


def test_scratch_buffer_is_reused(registry, bgr_frame):
    loop = make_loop(registry, FakeSource(frames(bgr_frame, 3)))
    buffers = []
    loop.run(lambda buffer: buffers.append(buffer.data))
    assert buffers[0] is buffers[1] is buffers[2]


def test_scratch_buffer_follows_resolution_changes(registry, bgr_frame):
    small = np.zeros((4, 6, 3), dtype=np.uint8)
    loop = make_loop(registry, FakeSource([bgr_frame, small]))
    loop.run()
    assert loop.snapshot().size == (6, 4)


def test_failing_effect_drops_frame_and_continues(registry, bgr_frame):
    calls = []

    def flaky(buffer, width, height):
        calls.append(width)
        if len(calls) == 1:
            raise RuntimeError("boom")

    loop = make_loop(registry, FakeSource(frames(bgr_frame, 3)))
    loop._effect = flaky
    loop.run()

    assert len(calls) == 3
    assert loop.frames_dropped == 1
    assert loop.frames_processed == 2


def test_presenter_can_stop_the_loop(registry, bgr_frame):
    source = FakeSource(frames(bgr_frame, 10))
    loop = make_loop(registry, source)
    loop.run(lambda buffer: False)
    assert loop.frames_processed == 1
    assert source.stop_calls == 1


def test_stopped_loop_cannot_restart(registry, bgr_frame):
    loop = make_loop(registry, FakeSource(frames(bgr_frame, 1)))
    loop.run()
    with pytest.raises(RuntimeError):
        loop.start()


def test_stop_is_idempotent(registry, bgr_frame):
    source = FakeSource(frames(bgr_frame, 1))
    loop = make_loop(registry, source)
    loop.run()
    loop.stop()
    loop.stop()
    assert source.stop_calls == 1


def test_transient_camera_failure_is_retried(registry, bgr_frame):
    source = FakeSource(frames(bgr_frame, 1), start_errors=[CameraAborted(), None])
    loop = make_loop(registry, source, retry_attempts=3)
    loop.run()
    assert source.start_calls == 2
    assert loop.frames_processed == 1


def test_terminal_camera_failure_leaves_loop_idle(registry):
    source = FakeSource(start_errors=[CameraBusy()])
    loop = make_loop(registry, source)
    with pytest.raises(CameraBusy):
        loop.start()
    assert loop.state is LoopState.IDLE
    assert not loop.is_running


def test_background_thread_streams_mjpeg(registry, bgr_frame):
    source = FakeSource([bgr_frame], repeat=True, delay=0.005)
    loop = make_loop(registry, source)
    loop.start()
    try:
        assert loop.is_running
        chunk = next(loop.mjpeg_frames())
        assert chunk.startswith(b"--frame\r\nContent-Type: image/jpeg\r\n\r\n\xff\xd8")
        assert chunk.endswith(b"\r\n")
    finally:
        loop.stop()

    assert loop.state is LoopState.STOPPED
    assert not source.is_running
    assert list(loop.mjpeg_frames(wait=0.01)) == []


class BlockingSource(FakeSource):
    """Source whose read() hangs until released."""

    def __init__(self, frames):
        super().__init__(frames, repeat=True)
        self.release = threading.Event()
        self.reading = threading.Event()

    def read(self):
        frame = super().read()
        self.reading.set()
        self.release.wait(5)
        return frame


def test_stop_leaves_release_to_a_busy_worker(registry, bgr_frame):
    source = BlockingSource([bgr_frame])
    loop = make_loop(registry, source)
    loop.start()
    assert source.reading.wait(5)

    loop.stop(timeout=0.05)

    # The worker is still inside read(): the camera must not be released under it
    assert source.stop_calls == 0
    assert loop.state is LoopState.RUNNING

    source.release.set()
    loop._thread.join(5)
    assert source.stop_calls == 1
    assert loop.state is LoopState.STOPPED
