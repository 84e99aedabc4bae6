"""
Media session controller.

Owns the active media source, its display geometry and the periodic detection
loop. States: IDLE -> LOADING -> ACTIVE, with SWITCHING_SOURCE while an old
source is torn down before a new one binds.

Detection loop policy: ticks fire at a fixed cadence (DETECTION_HZ). A tick
that finds an inference still in flight is dropped, never queued, so at most
one inference runs at a time. Each loop start/stop bumps a generation counter
and results from an older generation are discarded.
"""
# annotator/session.py
from __future__ import annotations
from typing import List, Optional
import asyncio
import logging

import numpy as np

from annotator.config import Settings
from annotator.detector import DetectorAdapter
from annotator.errors import SourceAcquisitionError
from annotator.geometry import compute_display_geometry, scale_detections
from annotator.media import MediaSource
from annotator.models import Detection, DisplayGeometry, SessionState
from annotator.visual import compose_frame, draw_detections, new_surface

logger = logging.getLogger(__name__)


class MediaSessionController:
    """Binds one MediaSource at a time and drives inference on it."""

    def __init__(self, detector: DetectorAdapter, settings: Settings):
        self.detector = detector
        self.s = settings
        self.state = SessionState.IDLE
        self.source: Optional[MediaSource] = None
        self.geometry: Optional[DisplayGeometry] = None
        self.container = (settings.CONTAINER_WIDTH, settings.CONTAINER_HEIGHT)
        self.detections: List[Detection] = []
        self.inference_calls = 0

        self._lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task] = None
        self._inference: Optional[asyncio.Task] = None
        self._generation = 0
        self._in_flight = False
        self._native = (0, 0)

    # ---- status ----
    @property
    def source_active(self) -> bool:
        return self.state is SessionState.ACTIVE and self.source is not None

    @property
    def detection_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # ---- source lifecycle ----
    async def activate(self, source: MediaSource) -> DisplayGeometry:
        """Tear down any current source, then bind and size the new one.

        Raises:
            SourceAcquisitionError: the source could not be opened; state is IDLE.
        """
        async with self._lock:
            if self.source is not None:
                self.state = SessionState.SWITCHING_SOURCE
                logger.debug(f"[session] switching from {self.source!r} to {source!r}")
                await self._teardown()

            self.state = SessionState.LOADING
            logger.debug(f"[session] loading {source!r}")
            try:
                width, height = await source.acquire(timeout=self.s.SOURCE_TIMEOUT)
            except asyncio.CancelledError:
                await source.release()
                self.state = SessionState.IDLE
                raise
            except SourceAcquisitionError:
                logger.exception(f"[session] could not acquire {source!r}")
                await source.release()
                self.state = SessionState.IDLE
                raise
            except Exception as e:
                logger.exception(f"[session] unexpected error acquiring {source!r}")
                await source.release()
                self.state = SessionState.IDLE
                raise SourceAcquisitionError(str(e)) from e

            self.source = source
            self._native = (width, height)
            self.geometry = compute_display_geometry(width, height, *self.container)
            self.state = SessionState.ACTIVE
            logger.info(f"[session] active {source!r} native={width}x{height} geometry={self.geometry}")
            return self.geometry

    async def deactivate(self) -> None:
        """Stop detection and release the source. Idempotent."""
        async with self._lock:
            await self._teardown()
            self.state = SessionState.IDLE

    async def _teardown(self) -> None:
        self.stop_detection_loop()
        source, self.source = self.source, None
        self.geometry = None
        self._native = (0, 0)
        if source is not None:
            await source.release()
            logger.debug(f"[session] released {source!r}")

    def resize(self, container_width: int, container_height: int) -> Optional[DisplayGeometry]:
        self.container = (int(container_width), int(container_height))
        self.geometry = compute_display_geometry(*self._native, *self.container)
        return self.geometry

    def pause(self) -> None:
        if self.source is not None:
            self.source.pause()

    def resume(self) -> None:
        if self.source is not None:
            self.source.resume()

    def current_frame(self) -> Optional[np.ndarray]:
        return self.source.current_frame() if self.source is not None else None

    # ---- detection loop ----
    def start_detection_loop(self) -> bool:
        """Start (or restart) the periodic detection loop. Requires ACTIVE."""
        if not self.source_active:
            logger.warning(f"[session] cannot start detection in state={self.state.value}")
            return False
        self._cancel_loop()
        self._generation += 1
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop(self._generation))
        logger.debug(f"[session] detection loop started generation={self._generation}")
        return True

    def stop_detection_loop(self) -> None:
        self._cancel_loop()
        self._generation += 1
        self.detections = []

    def _cancel_loop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("[session] detection loop cancelled")

    async def _run_loop(self, generation: int) -> None:
        interval = self.s.tick_interval
        while generation == self._generation:
            self._tick(generation)
            await asyncio.sleep(interval)

    def _tick(self, generation: int) -> None:
        source = self.source
        if source is None or source.paused or source.ended:
            return
        if self._in_flight:
            logger.debug("[session] inference still in flight; dropping tick")
            return
        frame = source.current_frame()
        if frame is None:
            return
        self._in_flight = True
        self.inference_calls += 1
        self._inference = asyncio.get_running_loop().create_task(self._infer(generation, frame))

    async def _infer(self, generation: int, frame: np.ndarray) -> None:
        try:
            results = await self.detector.detect(self.detector.handle, frame)
        finally:
            self._in_flight = False
        if generation != self._generation:
            logger.debug("[session] discarding stale detections")
            return
        self.detections = results

    # ---- rendering ----
    def display_detections(self) -> List[Detection]:
        if self.geometry is None:
            return []
        return scale_detections(self.detections, self.geometry.scale)

    def overlay(self) -> Optional[np.ndarray]:
        """Display-size BGRA surface with the current detections painted on."""
        if self.geometry is None:
            return None
        surface = new_surface(self.geometry.display_width, self.geometry.display_height)
        return draw_detections(surface, self.display_detections())

    def display_frame(self) -> Optional[np.ndarray]:
        """Composited container-size frame, or None until geometry resolves."""
        if self.geometry is None:
            return None
        return compose_frame(self.current_frame(), self.overlay(), self.geometry)
