"""
Media sources and the raw frame pump.

- LiveStream: webcam capture (cv2.VideoCapture on a device index)
- FileMedia: a local video or still image; images are decoded once
- MediaStream: reads frames from a capture off the event loop, keeps the
  latest frame and fans every raw frame out to sinks (e.g. the recorder)
"""
# annotator/media.py
from __future__ import annotations
from pathlib import Path
from typing import Callable, List, Optional, Tuple
import asyncio
import logging
import re

import cv2
import numpy as np

from annotator.errors import SourceAcquisitionError

logger = logging.getLogger(__name__)

FrameSink = Callable[[np.ndarray], None]

IMAGE_RE = re.compile(r"\.(jpg|jpeg|png|gif|bmp)$", re.IGNORECASE)


def is_image_path(path: str) -> bool:
    return bool(IMAGE_RE.search(str(path)))


class MediaStream:
    """Raw stream handle shared read-only by the detection loop and the recorder."""

    def __init__(self, capture, fps: float, live: bool, first_frame: Optional[np.ndarray] = None):
        self._cap = capture
        self.fps = float(fps) if fps and fps > 0 else 30.0
        self.live = live
        self.latest: Optional[np.ndarray] = first_frame
        self.ended = False
        self._paused = False
        self._stopped = False
        self._sinks: List[FrameSink] = []
        self._task: Optional[asyncio.Task] = None
        self._resume = asyncio.Event()
        self._resume.set()

    # ---- properties ----
    @property
    def width(self) -> int:
        return int(self.latest.shape[1]) if self.latest is not None else 0

    @property
    def height(self) -> int:
        return int(self.latest.shape[0]) if self.latest is not None else 0

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ---- sinks ----
    def add_sink(self, sink: FrameSink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def remove_sink(self, sink: FrameSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    # ---- lifecycle ----
    def start(self) -> None:
        if self._task is None and not self._stopped:
            self._task = asyncio.get_running_loop().create_task(self._pump())

    def pause(self) -> None:
        self._paused = True
        self._resume.clear()

    def resume(self) -> None:
        self._paused = False
        self._resume.set()

    async def _pump(self) -> None:
        # Files are paced to their frame rate; cameras block in read() anyway
        period = 0.0 if self.live else 1.0 / self.fps
        while not self._stopped:
            if self._paused:
                await self._resume.wait()
                continue
            ok, frame = await asyncio.to_thread(self._cap.read)
            if self._stopped:
                break
            if not ok or frame is None:
                logger.debug(f"[media] stream ended live={self.live}")
                self.ended = True
                break
            self.latest = frame
            for sink in list(self._sinks):
                try:
                    sink(frame)
                except Exception:
                    logger.exception("[media] frame sink failed")
            if period:
                await asyncio.sleep(period)

    async def stop(self) -> None:
        """Stop the pump and release the capture. Safe to call repeatedly."""
        self._stopped = True
        self._resume.set()
        task, self._task = self._task, None
        if task is not None:
            # let the in-progress read finish so release never races it
            await asyncio.gather(task, return_exceptions=True)
        self._sinks.clear()
        if self._cap is not None:
            cap, self._cap = self._cap, None
            cap.release()
            logger.debug("[media] capture released")


class MediaSource:
    """Base of the LiveStream | FileMedia union."""
    kind = "none"

    def __init__(self):
        self.stream: Optional[MediaStream] = None

    async def acquire(self, timeout: float = 5.0) -> Tuple[int, int]:
        """Open the source and resolve its native (width, height)."""
        raise NotImplementedError

    async def release(self) -> None:
        if self.stream is not None:
            stream, self.stream = self.stream, None
            await stream.stop()

    def current_frame(self) -> Optional[np.ndarray]:
        return self.stream.latest if self.stream is not None else None

    @property
    def paused(self) -> bool:
        return self.stream.paused if self.stream is not None else False

    @property
    def ended(self) -> bool:
        return self.stream.ended if self.stream is not None else False

    def pause(self) -> None:
        if self.stream is not None:
            self.stream.pause()

    def resume(self) -> None:
        if self.stream is not None:
            self.stream.resume()


async def _open_capture(target, timeout: float, live: bool,
                        size: Optional[Tuple[int, int]] = None) -> MediaStream:
    """Open a capture and wait for its first frame (the 'metadata loaded' event)."""

    def _open():
        cap = cv2.VideoCapture(target)
        if not cap.isOpened():
            cap.release()
            return None, None, 0.0
        if size is not None:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, size[0])
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, size[1])
        ok, frame = cap.read()
        if not ok or frame is None:
            cap.release()
            return cap, None, 0.0
        return cap, frame, float(cap.get(cv2.CAP_PROP_FPS) or 0.0)

    def _release_late(task: asyncio.Future) -> None:
        if task.cancelled() or task.exception() is not None:
            return
        cap, frame, _ = task.result()
        if frame is not None:
            cap.release()
            logger.debug(f"[media] released late capture {target!r}")

    # the worker thread cannot be interrupted; whatever it opens after we give
    # up must still be released
    opening = asyncio.ensure_future(asyncio.to_thread(_open))
    try:
        done, _ = await asyncio.wait({opening}, timeout=timeout)
    except asyncio.CancelledError:
        opening.add_done_callback(_release_late)
        raise
    if not done:
        opening.add_done_callback(_release_late)
        raise SourceAcquisitionError(f"Timed out opening {target!r}")
    try:
        cap, frame, fps = opening.result()
    except Exception as e:
        raise SourceAcquisitionError(f"Could not open {target!r}: {e}") from e

    if cap is None:
        raise SourceAcquisitionError(f"Could not open {target!r}")
    if frame is None:
        raise SourceAcquisitionError(f"No frames from {target!r}")
    logger.debug(f"[media] opened {target!r} size={frame.shape[1]}x{frame.shape[0]} fps={fps}")
    return MediaStream(cap, fps=fps or 25.0, live=live, first_frame=frame)


class LiveStream(MediaSource):
    """Webcam source; owns the capture handle until released."""
    kind = "live"

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480):
        super().__init__()
        self.camera_index = camera_index
        self.requested_size = (width, height)

    async def acquire(self, timeout: float = 5.0) -> Tuple[int, int]:
        self.stream = await _open_capture(self.camera_index, timeout, live=True, size=self.requested_size)
        self.stream.start()
        return self.stream.width, self.stream.height

    def __repr__(self) -> str:
        return f"LiveStream(camera_index={self.camera_index})"


class FileMedia(MediaSource):
    """Local video or still image."""
    kind = "file"

    def __init__(self, path: str | Path, is_image: Optional[bool] = None):
        super().__init__()
        self.path = str(path)
        self.is_image = is_image_path(self.path) if is_image is None else bool(is_image)
        self.image: Optional[np.ndarray] = None

    async def acquire(self, timeout: float = 5.0) -> Tuple[int, int]:
        if not Path(self.path).exists():
            raise SourceAcquisitionError(f"Media not found: {self.path}")

        if self.is_image:
            try:
                img = await asyncio.wait_for(asyncio.to_thread(cv2.imread, self.path), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise SourceAcquisitionError(f"Timed out decoding {self.path}") from e
            if img is None:
                raise SourceAcquisitionError(f"Could not decode image: {self.path}")
            self.image = img
            logger.debug(f"[media] decoded image {self.path} size={img.shape[1]}x{img.shape[0]}")
            return int(img.shape[1]), int(img.shape[0])

        self.stream = await _open_capture(self.path, timeout, live=False)
        self.stream.start()
        return self.stream.width, self.stream.height

    async def release(self) -> None:
        self.image = None
        await super().release()

    def current_frame(self) -> Optional[np.ndarray]:
        if self.is_image:
            return self.image
        return super().current_frame()

    def __repr__(self) -> str:
        return f"FileMedia(path={self.path!r}, is_image={self.is_image})"
