"""
Detector adapter: load-once model lifecycle around a pluggable backend.

Any backend with `load() -> handle` and `detect(handle, frame) -> [Detection]`
can be plugged in. Backend calls are blocking and run off the event loop.
"""
# annotator/detector.py
from __future__ import annotations
from typing import Any, List, Optional, Protocol, Sequence
import asyncio
import logging

import numpy as np

from annotator.config import Settings
from annotator.errors import InferenceError, ModelLoadError
from annotator.models import Detection

logger = logging.getLogger(__name__)


class DetectorBackend(Protocol):
    def load(self) -> Any: ...

    def detect(self, handle: Any, frame: np.ndarray) -> Sequence[Detection]: ...


class YoloBackend:
    """Ultralytics YOLO backend (COCO labels). Weights are fetched on first load."""

    def __init__(self, settings: Settings):
        self.s = settings

    def load(self):
        # Lazy import: keeps torch out of module import time and lets tests swap backends
        from ultralytics import YOLO
        logger.debug(f"[detector] YOLO load model={self.s.MODEL_NAME} device={self.s.DEVICE}")
        return YOLO(self.s.MODEL_NAME)

    def detect(self, model, frame: np.ndarray) -> List[Detection]:
        try:
            results = model.predict(
                source=frame,
                conf=self.s.SCORE_THRESHOLD,
                max_det=self.s.MAX_DETECTIONS,
                device=self.s.DEVICE,
                verbose=False,
            )
        except Exception as e:
            raise InferenceError(f"YOLO predict failed: {e}") from e

        dets: List[Detection] = []
        if not results:
            return dets
        r = results[0]
        boxes = getattr(r, "boxes", None)
        if boxes is None:
            return dets
        names = getattr(r, "names", None) or getattr(model, "names", {}) or {}
        for xyxy, conf, cls_id in zip(boxes.xyxy.tolist(), boxes.conf.tolist(), boxes.cls.tolist()):
            x1, y1, x2, y2 = (float(v) for v in xyxy)
            label = names.get(int(cls_id), str(int(cls_id)))
            dets.append(Detection(
                bbox=(x1, y1, x2 - x1, y2 - y1),
                class_label=label,
                confidence=max(0.0, min(1.0, float(conf))),
            ))
        return dets


class DetectorAdapter:
    """Owns the model handle; concurrent loaders share one in-flight load."""

    def __init__(self, backend: DetectorBackend):
        self.backend = backend
        self._handle: Any = None
        self._loading: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Any:
        return self._handle

    async def load_model(self) -> Any:
        """Return the model handle, starting a single shared load if needed.

        Raises:
            ModelLoadError: the load attempt failed; the next call retries.
        """
        if self._handle is not None:
            return self._handle
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._loading)

    async def _load(self) -> Any:
        logger.info(f"[detector] loading model backend={type(self.backend).__name__}")
        try:
            handle = await asyncio.to_thread(self.backend.load)
        except Exception as e:
            logger.exception("[detector] model load failed")
            raise ModelLoadError(f"Failed to load the detection model: {e}") from e
        else:
            self._handle = handle
            logger.info("[detector] model loaded")
            return handle
        finally:
            self._loading = None

    async def detect(self, handle: Any, frame: np.ndarray) -> List[Detection]:
        """Run inference on one still frame. Failures yield an empty list."""
        try:
            if handle is None:
                handle = await self.load_model()
            found = await asyncio.to_thread(self.backend.detect, handle, frame)
            return list(found)
        except Exception:
            logger.exception("[detector] detection failed; returning no detections")
            return []
