# annotator/live.py
"""
Live (real-time) desktop window.

Shows the active source scaled into the container with detection boxes on top
and a status line. Keys:
- w: start/stop webcam
- d: start/stop detection
- r: start/stop recording (raw stream, saved as WebM)
- p: pause/resume playback
- x: stop all
- q: quit
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from annotator.config import Settings
from annotator.errors import AnnotatorError
from annotator.pipeline import AnnotationPipeline
from annotator.visual import draw_status

logger = logging.getLogger(__name__)

WINDOW_TITLE = "Live Detection (q to quit)"
UI_FPS = 30.0


def _idle_frame(settings: Settings) -> np.ndarray:
    frame = np.zeros((settings.CONTAINER_HEIGHT, settings.CONTAINER_WIDTH, 3), dtype=np.uint8)
    cv2.putText(frame, "No media source selected", (10, settings.CONTAINER_HEIGHT // 2),
                cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA)
    return frame


async def _handle_key(pipeline: AnnotationPipeline, key: int, camera_index: Optional[int]) -> None:
    session = pipeline.session
    if key == ord("w"):
        await pipeline.toggle_webcam(camera_index)
    elif key == ord("d"):
        if session.detection_running:
            session.stop_detection_loop()
        else:
            session.start_detection_loop()
    elif key == ord("r"):
        if pipeline.recorder.is_recording():
            path = await pipeline.stop_recording()
            logger.info(f"[live] recording saved as {path}")
        else:
            await pipeline.start_recording()
    elif key == ord("p"):
        if session.source is not None and session.source.paused:
            session.resume()
        else:
            session.pause()
    elif key == ord("x"):
        await pipeline.stop_all()


async def _run(settings: Settings, pipeline: AnnotationPipeline,
               camera_index: Optional[int], file_path: Optional[str]) -> None:
    if settings.PRELOAD_MODEL:
        asyncio.get_running_loop().create_task(pipeline.load_model())

    try:
        if file_path:
            await pipeline.load_file(file_path)
        else:
            await pipeline.toggle_webcam(camera_index)
    except AnnotatorError as e:
        logger.error(f"[live] could not start source: {e}")

    try:
        while True:
            frame = pipeline.session.display_frame()
            if frame is None:
                frame = _idle_frame(settings)
            cv2.imshow(WINDOW_TITLE, draw_status(frame, pipeline.status()))

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key != 0xFF:
                try:
                    await _handle_key(pipeline, key, camera_index)
                except AnnotatorError as e:
                    # surfaced to the user, never fatal to the window
                    logger.error(f"[live] {e}")
            await asyncio.sleep(1.0 / UI_FPS)
    finally:
        saved = await pipeline.stop_all()
        if saved is not None:
            logger.info(f"[live] recording saved as {saved}")
        cv2.destroyAllWindows()


def run_live_overlay(settings: Settings,
                     camera_index: Optional[int] = None,
                     file_path: Optional[str | Path] = None,
                     pipeline: Optional[AnnotationPipeline] = None) -> None:
    """Open the webcam (or a file), detect objects, and draw boxes in a live window.

    Press 'q' to quit the window.
    """
    pipeline = pipeline or AnnotationPipeline(settings)
    asyncio.run(_run(settings, pipeline, camera_index, str(file_path) if file_path else None))
