import asyncio

import numpy as np
import pytest

from annotator.config import Settings
from annotator.detector import DetectorAdapter
from annotator.errors import SourceAcquisitionError
from annotator.media import MediaSource
from annotator.models import Detection, SessionState
from annotator.session import MediaSessionController


class DummySource(MediaSource):
    kind = "live"

    def __init__(self, size=(1920, 1080), fail=False, acquire_delay=0.0):
        super().__init__()
        self.size = size
        self.fail = fail
        self.acquire_delay = acquire_delay
        self.frame = np.zeros((size[1], size[0], 3), dtype=np.uint8)
        self.released = 0
        self.is_paused = False
        self.is_ended = False

    async def acquire(self, timeout=5.0):
        await asyncio.sleep(self.acquire_delay)
        if self.fail:
            raise SourceAcquisitionError("Permission denied")
        return self.size

    async def release(self):
        self.released += 1

    def current_frame(self):
        return self.frame

    @property
    def paused(self):
        return self.is_paused

    @property
    def ended(self):
        return self.is_ended


class DummyBackend:
    def __init__(self, delay=0.0, fail=False):
        self.calls = 0
        self.delay = delay
        self.fail = fail
        self.result = [Detection(bbox=(100, 100, 200, 150), class_label="person", confidence=0.9)]

    def load(self):
        return "handle"

    def detect(self, handle, frame):
        import time
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("inference failed")
        return self.result


def _controller(backend, hz=50.0):
    s = Settings(DETECTION_HZ=hz, CONTAINER_WIDTH=640, CONTAINER_HEIGHT=480)
    return MediaSessionController(DetectorAdapter(backend), s)


def test_activate_computes_geometry():
    ctl = _controller(DummyBackend())

    async def scenario():
        g = await ctl.activate(DummySource())
        return g

    g = asyncio.run(scenario())
    assert ctl.state is SessionState.ACTIVE and ctl.source_active
    assert (g.display_width, g.display_height) == (640, 360)


def test_acquisition_failure_leaves_idle():
    ctl = _controller(DummyBackend())
    src = DummySource(fail=True)

    async def scenario():
        with pytest.raises(SourceAcquisitionError):
            await ctl.activate(src)

    asyncio.run(scenario())
    assert ctl.state is SessionState.IDLE
    assert ctl.source is None and ctl.geometry is None
    assert src.released == 1
    assert not ctl.start_detection_loop()


def test_switching_source_releases_previous():
    ctl = _controller(DummyBackend())
    first, second = DummySource(), DummySource(size=(640, 480))

    async def scenario():
        await ctl.activate(first)
        await ctl.activate(second)

    asyncio.run(scenario())
    assert first.released == 1 and second.released == 0
    assert ctl.source is second
    assert (ctl.geometry.display_width, ctl.geometry.display_height) == (640, 480)


def test_cancelled_activation_releases_source():
    ctl = _controller(DummyBackend())
    src = DummySource(acquire_delay=1.0)

    async def scenario():
        task = asyncio.ensure_future(ctl.activate(src))
        await asyncio.sleep(0.05)
        assert ctl.state is SessionState.LOADING
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert ctl.state is SessionState.IDLE and src.released == 1


def test_detection_loop_updates_detections():
    backend = DummyBackend()
    ctl = _controller(backend)

    async def scenario():
        await ctl.activate(DummySource())
        assert ctl.start_detection_loop()
        await asyncio.sleep(0.15)
        dets = list(ctl.detections)
        shown = ctl.display_detections()
        overlay = ctl.overlay()
        frame = ctl.display_frame()
        await ctl.deactivate()
        return dets, shown, overlay, frame

    dets, shown, overlay, frame = asyncio.run(scenario())
    assert dets == backend.result
    assert tuple(round(v) for v in shown[0].bbox) == (33, 33, 67, 50)
    assert overlay.shape == (360, 640, 4) and overlay[..., 3].any()
    assert frame.shape == (480, 640, 3)


def test_restarting_loop_keeps_single_timer():
    backend = DummyBackend()
    ctl = _controller(backend, hz=20.0)  # 50ms ticks

    async def scenario():
        await ctl.activate(DummySource())
        ctl.start_detection_loop()
        ctl.start_detection_loop()
        ctl.start_detection_loop()
        await asyncio.sleep(0.52)
        n = backend.calls
        await ctl.deactivate()
        return n

    n = asyncio.run(scenario())
    # one loop at 20Hz over ~0.5s is ~11 ticks; three loops would be ~33
    assert 5 <= n <= 14


def test_slow_inference_never_overlaps():
    backend = DummyBackend(delay=0.12)
    ctl = _controller(backend, hz=50.0)  # 20ms ticks, 120ms inference

    async def scenario():
        await ctl.activate(DummySource())
        ctl.start_detection_loop()
        await asyncio.sleep(0.5)
        await ctl.deactivate()
        await asyncio.sleep(0.15)

    asyncio.run(scenario())
    # ~25 ticks fired, but at most one inference at a time
    assert 2 <= backend.calls <= 6
    assert ctl.inference_calls == backend.calls


def test_backend_failure_yields_empty_and_loop_continues():
    backend = DummyBackend(fail=True)
    ctl = _controller(backend, hz=50.0)

    async def scenario():
        await ctl.activate(DummySource())
        ctl.detections = list(DummyBackend().result)
        ctl.start_detection_loop()
        await asyncio.sleep(0.2)
        running = ctl.detection_running
        dets = list(ctl.detections)
        overlay = ctl.overlay()
        await ctl.deactivate()
        return running, dets, overlay

    running, dets, overlay = asyncio.run(scenario())
    assert running
    assert dets == []
    assert not overlay.any()
    assert backend.calls >= 2


def test_paused_source_skips_inference():
    backend = DummyBackend()
    ctl = _controller(backend)
    src = DummySource()
    src.is_paused = True

    async def scenario():
        await ctl.activate(src)
        ctl.start_detection_loop()
        await asyncio.sleep(0.15)
        paused_calls = backend.calls
        src.is_paused = False
        await asyncio.sleep(0.15)
        await ctl.deactivate()
        return paused_calls

    paused_calls = asyncio.run(scenario())
    assert paused_calls == 0 and backend.calls > 0


def test_deactivate_stops_loop_and_discards_in_flight():
    backend = DummyBackend(delay=0.1)
    ctl = _controller(backend, hz=20.0)
    src = DummySource()

    async def scenario():
        await ctl.activate(src)
        await ctl.detector.load_model()
        ctl.start_detection_loop()
        await asyncio.sleep(0.05)  # first inference is in flight
        await ctl.deactivate()
        calls = backend.calls
        await asyncio.sleep(0.4)  # several tick intervals
        return calls

    calls = asyncio.run(scenario())
    assert backend.calls == calls
    assert ctl.detections == []
    assert not ctl.detection_running
    assert ctl.state is SessionState.IDLE and src.released == 1


def test_deactivate_is_idempotent():
    ctl = _controller(DummyBackend())
    src = DummySource()

    async def scenario():
        await ctl.activate(src)
        await ctl.deactivate()
        await ctl.deactivate()

    asyncio.run(scenario())
    assert src.released == 1 and ctl.state is SessionState.IDLE


def test_resize_recomputes_geometry():
    ctl = _controller(DummyBackend())

    async def scenario():
        await ctl.activate(DummySource())
        return ctl.resize(1280, 1280)

    g = asyncio.run(scenario())
    assert (g.display_width, g.display_height, g.offset_y) == (1280, 720, 280)
