# annotator/pipeline.py
from __future__ import annotations
from pathlib import Path
from typing import Optional
import logging

from annotator.config import Settings
from annotator.detector import DetectorAdapter, DetectorBackend, YoloBackend
from annotator.errors import ModelLoadError, RecorderError
from annotator.media import FileMedia, LiveStream
from annotator.models import PipelineStatus
from annotator.recording import EncoderFactory, Recorder, recording_filename
from annotator.session import MediaSessionController

logger = logging.getLogger(__name__)


class AnnotationPipeline:
    """
    Wires detector, media session and recorder the way the UI drives them:
    webcam toggle, file load, recording start/stop and a global stop.
    """

    def __init__(self, settings: Settings,
                 backend: Optional[DetectorBackend] = None,
                 encoder_factory: Optional[EncoderFactory] = None):
        self.s = settings
        self.detector = DetectorAdapter(backend or YoloBackend(settings))
        self.session = MediaSessionController(self.detector, settings)
        self.recorder = Recorder(settings, encoder_factory=encoder_factory)

    async def load_model(self) -> bool:
        try:
            await self.detector.load_model()
        except ModelLoadError:
            logger.error("[pipeline] model not loaded; detection will retry on demand")
            return False
        return True

    # ---- sources ----
    async def toggle_webcam(self, camera_index: Optional[int] = None) -> bool:
        """Start the webcam, or stop everything if it is already running.

        Returns True when the webcam is active afterwards.
        """
        if isinstance(self.session.source, LiveStream):
            await self.stop_all()
            return False
        await self.stop_all()
        idx = self.s.CAMERA_INDEX if camera_index is None else camera_index
        await self.session.activate(LiveStream(idx, self.s.CAMERA_WIDTH, self.s.CAMERA_HEIGHT))
        if self.s.AUTO_DETECT:
            self.session.start_detection_loop()
        return True

    async def load_file(self, path: str | Path, is_image: Optional[bool] = None) -> None:
        await self.stop_all()
        await self.session.activate(FileMedia(path, is_image=is_image))
        if self.s.AUTO_DETECT:
            self.session.start_detection_loop()
        logger.info(f"[pipeline] now playing: {Path(path).name}")

    # ---- recording ----
    async def start_recording(self) -> None:
        stream = self.session.source.stream if self.session.source_active else None
        if stream is None:
            raise RecorderError("Please start the webcam first")
        await self.recorder.start(stream)

    async def stop_recording(self) -> Path:
        blob = await self.recorder.stop()
        return self.recorder.save(blob, recording_filename())

    async def stop_all(self) -> Optional[Path]:
        """Save any in-progress recording, stop detection and release the source."""
        saved = None
        if self.recorder.is_recording():
            try:
                saved = await self.stop_recording()
            except RecorderError:
                logger.exception("[pipeline] failed to save recording")
        await self.session.deactivate()
        return saved

    def status(self) -> PipelineStatus:
        source = self.session.source
        return PipelineStatus(
            model_loaded=self.detector.ready,
            source_active=self.session.source_active,
            detection_running=self.session.detection_running,
            recording=self.recorder.is_recording(),
            current_detections=list(self.session.detections),
            session_state=self.session.state,
            source_kind=source.kind if source is not None else "none",
            geometry=self.session.geometry,
        )
