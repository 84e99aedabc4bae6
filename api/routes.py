"""
REST endpoints for controlling the pipeline and reading its status.
"""
import os
import shutil
import tempfile
import logging

import cv2
from fastapi import APIRouter, UploadFile, File, HTTPException
from fastapi.responses import FileResponse, Response

from annotator.config import Settings
from annotator.errors import ModelLoadError, RecorderError, SourceAcquisitionError
from annotator.models import PipelineStatus
from annotator.pipeline import AnnotationPipeline

router = APIRouter()
settings = Settings()
pipeline = AnnotationPipeline(settings)
logger = logging.getLogger(__name__)

# uploaded media lives until the next upload replaces it
_upload = {"path": None}


def _drop_upload() -> None:
    path, _upload["path"] = _upload["path"], None
    if path:
        try:
            os.unlink(path)
        except OSError:
            logger.warning(f"[api] failed to cleanup tmp file: {path}")


@router.get("/status", response_model=PipelineStatus)
async def status() -> PipelineStatus:
    return pipeline.status()


@router.post("/model/load")
async def model_load():
    try:
        await pipeline.detector.load_model()
    except ModelLoadError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"model_loaded": True}


@router.post("/source/webcam")
async def source_webcam(camera_index: int | None = None):
    """
    Toggle the webcam: start it (and detection) or stop everything if it is running.
    """
    logger.debug(f"[api] /source/webcam camera_index={camera_index}")
    try:
        active = await pipeline.toggle_webcam(camera_index)
    except SourceAcquisitionError as e:
        raise HTTPException(status_code=400, detail=f"Could not access your webcam: {e}")
    return {"status": "started" if active else "stopped"}


@router.post("/source/file")
async def source_file(file: UploadFile = File(...)):
    """
    Load an uploaded video or image as the active source.

    Args:
        file: Uploaded media; images are recognized by extension.

    Returns:
        dict: Source name and display geometry.
    """
    logger.debug(f"[api] /source/file filename={file.filename}")
    try:
        suffix = os.path.splitext(file.filename or "")[1] or ".mp4"
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
            shutil.copyfileobj(file.file, tmp)
            tmp_path = tmp.name
    except Exception as e:
        logger.exception("[api] upload save failed")
        raise HTTPException(status_code=400, detail=f"Upload failed: {e}")

    try:
        await pipeline.load_file(tmp_path)
    except SourceAcquisitionError as e:
        os.unlink(tmp_path)
        raise HTTPException(status_code=400, detail=str(e))
    _drop_upload()
    _upload["path"] = tmp_path
    return {"status": "loaded", "name": file.filename, "geometry": pipeline.session.geometry}


@router.post("/source/stop")
async def source_stop():
    saved = await pipeline.stop_all()
    _drop_upload()
    return {"status": "stopped", "recording": str(saved) if saved else None}


@router.post("/source/pause")
async def source_pause():
    pipeline.session.pause()
    return {"paused": True}


@router.post("/source/resume")
async def source_resume():
    pipeline.session.resume()
    return {"paused": False}


@router.post("/detection/start")
async def detection_start():
    if not pipeline.session.start_detection_loop():
        raise HTTPException(status_code=409, detail="No active media source")
    return {"status": "running"}


@router.post("/detection/stop")
async def detection_stop():
    pipeline.session.stop_detection_loop()
    return {"status": "stopped"}


@router.post("/recording/start")
async def recording_start():
    try:
        await pipeline.start_recording()
    except RecorderError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"status": "recording"}


@router.post("/recording/stop")
async def recording_stop():
    """
    Stop recording, save it with a timestamped name and return it as a download.
    """
    try:
        path = await pipeline.stop_recording()
    except RecorderError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return FileResponse(path, media_type="video/webm", filename=path.name)


@router.get("/frame")
async def frame():
    """One composited JPEG of the current display (media + detection overlay)."""
    out = pipeline.session.display_frame()
    if out is None:
        raise HTTPException(status_code=404, detail="No media source selected")
    ok, buf = cv2.imencode(".jpg", out)
    if not ok:
        raise HTTPException(status_code=500, detail="Frame encoding failed")
    return Response(content=buf.tobytes(), media_type="image/jpeg")
