"""
Raw-stream recorder.

Records the unannotated frames of a MediaStream into a WebM artifact. The
recorder only registers a frame sink on the stream; it never touches the
detection loop or the overlay.
"""
# annotator/recording.py
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Protocol
import asyncio
import logging
import os
import tempfile
import time

import cv2
import numpy as np

from annotator.config import Settings
from annotator.errors import RecorderError
from annotator.media import MediaStream
from annotator.models import Recording, RecorderState

logger = logging.getLogger(__name__)

MIME_TYPE = "video/webm"
FALLBACK_CODECS = ("VP90", "VP80")


class FrameEncoder(Protocol):
    def write(self, frame: np.ndarray) -> bytes: ...

    def finish(self) -> bytes: ...


EncoderFactory = Callable[[int, int, float], FrameEncoder]


class OpenCVWebmEncoder:
    """cv2.VideoWriter into a temporary .webm; bytes are emitted on finish.

    The WebM muxer rewrites its header when closing, so the file cannot be
    streamed out in pieces while it is still open.
    """

    def __init__(self, width: int, height: int, fps: float, codec: str = "VP90"):
        self.size = (int(width), int(height))
        fd, self.path = tempfile.mkstemp(suffix=".webm", prefix="recording-")
        os.close(fd)

        codecs = [codec] + [c for c in FALLBACK_CODECS if c != codec]
        self._writer = None
        for cc in codecs:
            writer = cv2.VideoWriter(self.path, cv2.VideoWriter_fourcc(*cc), float(fps), self.size)
            if writer.isOpened():
                self._writer = writer
                self.codec = cc
                break
            writer.release()
        if self._writer is None:
            os.unlink(self.path)
            raise RecorderError(f"No WebM encoder available (tried {', '.join(codecs)})")
        logger.debug(f"[recorder] encoder codec={self.codec} size={self.size} fps={fps} path={self.path}")

    def write(self, frame: np.ndarray) -> bytes:
        if (frame.shape[1], frame.shape[0]) != self.size:
            frame = cv2.resize(frame, self.size)
        self._writer.write(frame)
        return b""

    def finish(self) -> bytes:
        self._writer.release()
        try:
            return Path(self.path).read_bytes()
        finally:
            try:
                os.unlink(self.path)
            except OSError:
                logger.warning(f"[recorder] failed to cleanup tmp file: {self.path}")


def recording_filename(now: Optional[datetime] = None) -> str:
    """detection-recording-<ISO8601 UTC, ':' and '.' replaced by '-'>.webm"""
    now = now or datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc)
    iso = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    return "detection-recording-" + iso.replace(":", "-").replace(".", "-") + ".webm"


class Recorder:
    """Captures encoded chunks from a raw stream; at most one session at a time."""

    def __init__(self, settings: Settings, encoder_factory: Optional[EncoderFactory] = None):
        self.s = settings
        self.state = RecorderState.IDLE
        self._encoder_factory = encoder_factory or (
            lambda w, h, fps: OpenCVWebmEncoder(w, h, fps, codec=settings.RECORD_CODEC)
        )
        self._chunks: List[bytes] = []
        self._stream: Optional[MediaStream] = None
        self._encoder: Optional[FrameEncoder] = None
        self._queue: Optional[asyncio.Queue] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self.dropped_frames = 0

    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    async def start(self, stream: Optional[MediaStream]) -> None:
        """Begin capturing the raw stream.

        Raises:
            RecorderError: a session is already in progress, or there is no stream.
        """
        if self.state is not RecorderState.IDLE:
            raise RecorderError("Recording already in progress")
        if stream is None or stream.stopped:
            raise RecorderError("No stream to record")

        # claimed before the first await so overlapping starts are rejected
        self.state = RecorderState.STARTING
        encoder = None
        try:
            encoder = await asyncio.to_thread(self._encoder_factory, stream.width, stream.height, stream.fps)
        except RecorderError:
            logger.exception("[recorder] encoder unavailable")
            raise
        except Exception as e:
            logger.exception("[recorder] error starting recording")
            raise RecorderError("Failed to start recording") from e
        finally:
            if encoder is None:
                self.state = RecorderState.IDLE

        self._chunks = []
        self.dropped_frames = 0
        self._encoder = encoder
        self._stream = stream
        self._queue = asyncio.Queue(maxsize=max(1, self.s.RECORD_QUEUE_SIZE))
        self._writer_task = asyncio.get_running_loop().create_task(self._drain(self._queue, encoder))
        stream.add_sink(self._on_frame)
        self._started_at = time.time()
        self.state = RecorderState.RECORDING
        logger.info("[recorder] recording started")

    def _on_frame(self, frame: np.ndarray) -> None:
        if self.state is not RecorderState.RECORDING or self._queue is None:
            return
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_frames += 1
            logger.debug(f"[recorder] queue full; dropped frame total={self.dropped_frames}")

    async def _drain(self, queue: asyncio.Queue, encoder: FrameEncoder) -> None:
        while True:
            frame = await queue.get()
            if frame is None:
                break
            try:
                chunk = await asyncio.to_thread(encoder.write, frame)
            except Exception:
                logger.exception("[recorder] encoder write failed")
                continue
            if chunk:
                self._chunks.append(chunk)

    async def stop(self) -> Recording:
        """Finalize the session and return the concatenated artifact.

        Raises:
            RecorderError: no recording in progress.
        """
        if self.state is not RecorderState.RECORDING:
            raise RecorderError("No recording in progress")

        self.state = RecorderState.FINALIZING
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.remove_sink(self._on_frame)
        try:
            await self._queue.put(None)
            await self._writer_task
            tail = await asyncio.to_thread(self._encoder.finish)
            if tail:
                self._chunks.append(tail)
            blob = Recording(data=b"".join(self._chunks), mime_type=MIME_TYPE)
        except Exception as e:
            logger.exception("[recorder] finalization failed")
            raise RecorderError("Failed to finalize recording") from e
        finally:
            self._chunks = []
            self._encoder = None
            self._queue = None
            self._writer_task = None
            started_at, self._started_at = self._started_at, None
            self.state = RecorderState.IDLE

        elapsed = time.time() - (started_at or time.time())
        logger.info(f"[recorder] recording stopped size={blob.size} seconds={elapsed:.1f} dropped={self.dropped_frames}")
        return blob

    def save(self, blob: Recording, filename: str) -> Path:
        """Write the artifact under RECORDINGS_DIR. Existing files are overwritten."""
        out_dir = Path(self.s.RECORDINGS_DIR)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / filename
        path.write_bytes(blob.data)
        logger.info(f"[recorder] saved {path} ({blob.size} bytes)")
        return path
