import asyncio

import pytest

from annotator.config import Settings
from annotator.errors import RecorderError, SourceAcquisitionError
from annotator.models import Detection, SessionState
from annotator.pipeline import AnnotationPipeline


class DummyBackend:
    def __init__(self, fail_load=False):
        self.fail_load = fail_load
    def load(self):
        if self.fail_load:
            raise RuntimeError("no network")
        return object()
    def detect(self, handle, frame):
        return [Detection(bbox=(10, 10, 20, 20), class_label="cat", confidence=0.8)]


class DummyEncoder:
    def __init__(self, w, h, fps):
        pass
    def write(self, frame):
        return b"x"
    def finish(self):
        return b"END"


def _pipeline(tmp_path, **kw):
    s = Settings(DETECTION_HZ=50, RECORDINGS_DIR=str(tmp_path / "rec"), **kw)
    return AnnotationPipeline(s, backend=DummyBackend(), encoder_factory=DummyEncoder)


def test_load_model_reports_failure(tmp_path):
    p = AnnotationPipeline(Settings(), backend=DummyBackend(fail_load=True))
    assert asyncio.run(p.load_model()) is False
    assert not p.status().model_loaded


def test_image_file_runs_detection(tmp_path, sample_image_path):
    p = _pipeline(tmp_path)

    async def scenario():
        assert await p.load_model()
        await p.load_file(sample_image_path)
        await asyncio.sleep(0.1)
        st = p.status()
        with pytest.raises(RecorderError):
            await p.start_recording()  # images carry no stream
        await p.stop_all()
        return st

    st = asyncio.run(scenario())
    assert st.model_loaded and st.source_active and st.detection_running
    assert st.source_kind == "file" and not st.recording
    assert [d.class_label for d in st.current_detections] == ["cat"]
    after = p.status()
    assert not after.source_active and not after.detection_running
    assert after.current_detections == [] and after.session_state is SessionState.IDLE


def test_recording_from_video_and_stop_all_saves(tmp_path, sample_video_path):
    p = _pipeline(tmp_path)

    async def scenario():
        await p.load_file(sample_video_path)
        await p.start_recording()
        recording = p.status().recording
        await asyncio.sleep(0.15)
        saved = await p.stop_all()
        return recording, saved

    recording, saved = asyncio.run(scenario())
    assert recording
    assert saved is not None and saved.name.startswith("detection-recording-")
    data = saved.read_bytes()
    assert data.endswith(b"END") and len(data) > 3
    assert not p.status().recording


def test_recording_requires_source(tmp_path):
    p = _pipeline(tmp_path)
    with pytest.raises(RecorderError, match="webcam"):
        asyncio.run(p.start_recording())
    with pytest.raises(RecorderError):
        asyncio.run(p.stop_recording())


def test_missing_file_leaves_idle(tmp_path):
    p = _pipeline(tmp_path)
    with pytest.raises(SourceAcquisitionError):
        asyncio.run(p.load_file(tmp_path / "nope.mp4"))
    assert p.status().session_state is SessionState.IDLE


def test_webcam_toggle(tmp_path, monkeypatch, sample_video_path):
    import annotator.media as media_mod
    real_capture = media_mod.cv2.VideoCapture
    # stand in the sample video for camera 0
    monkeypatch.setattr(media_mod.cv2, "VideoCapture",
                        lambda target: real_capture(str(sample_video_path)))
    p = _pipeline(tmp_path, AUTO_DETECT=False)

    async def scenario():
        started = await p.toggle_webcam(0)
        st = p.status()
        stopped = await p.toggle_webcam(0)
        return started, st, stopped

    started, st, stopped = asyncio.run(scenario())
    assert started and not stopped
    assert st.source_kind == "live" and st.source_active and not st.detection_running
    assert not p.status().source_active
