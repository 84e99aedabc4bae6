
"""Overlay rendering & display compositing helpers.

- draw_detections: paint boxes + labels on a transparent BGRA surface (display space)
- compose_frame: fit a raw frame into the container and blend the overlay on top
- draw_status: status line + detected objects list for the presentation layer

Detections passed to draw_detections must already be scaled to display space.
"""
from __future__ import annotations
import cv2
import numpy as np
from typing import Iterable, Optional, Tuple

from annotator.models import Detection, DisplayGeometry, PipelineStatus

# #00b894 in BGR(A)
BOX_COLOR: Tuple[int, int, int, int] = (148, 184, 0, 255)
LABEL_BG: Tuple[int, int, int, int] = (148, 184, 0, 178)   # 0.7 alpha
TEXT_COLOR: Tuple[int, int, int, int] = (255, 255, 255, 255)
FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.5
LABEL_HEIGHT = 20


def format_label(det: Detection) -> str:
    return f"{det.class_label} {round(det.confidence * 100)}%"


def new_surface(width: int, height: int) -> np.ndarray:
    """Fully transparent BGRA surface."""
    return np.zeros((max(0, int(height)), max(0, int(width)), 4), dtype=np.uint8)


def draw_detections(surface: np.ndarray, detections: Iterable[Detection]) -> np.ndarray:
    """Clear the surface, then draw each detection in sequence order.

    Args:
        surface: BGRA image the size of the displayed media
        detections: boxes in display-pixel space

    Returns:
        The same surface (modified in place)
    """
    surface[:] = 0
    for det in detections:
        x, y, w, h = (int(round(v)) for v in det.bbox)
        cv2.rectangle(surface, (x, y), (x + w, y + h), BOX_COLOR, 2)

        label = format_label(det)
        (text_w, _text_h), _base = cv2.getTextSize(label, FONT, FONT_SCALE, 1)
        cv2.rectangle(surface, (x, y - LABEL_HEIGHT), (x + text_w + 10, y), LABEL_BG, -1)
        cv2.putText(surface, label, (x + 5, y - 5), FONT, FONT_SCALE, TEXT_COLOR, 1, cv2.LINE_AA)
    return surface


def compose_frame(frame: Optional[np.ndarray],
                  surface: Optional[np.ndarray],
                  geometry: DisplayGeometry) -> np.ndarray:
    """Place the resized frame and the overlay at the centered offset of the container."""
    canvas = np.zeros((geometry.container_height, geometry.container_width, 3), dtype=np.uint8)
    ox, oy = geometry.offset_x, geometry.offset_y
    dw, dh = geometry.display_width, geometry.display_height
    if dw <= 0 or dh <= 0:
        return canvas

    region = canvas[oy:oy + dh, ox:ox + dw]
    if frame is not None:
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        region[:] = cv2.resize(frame[..., :3], (dw, dh), interpolation=cv2.INTER_AREA)

    if surface is not None and surface.shape[:2] == (dh, dw):
        alpha = surface[..., 3:4].astype(np.float32) / 255.0
        blended = region.astype(np.float32) * (1.0 - alpha) + surface[..., :3].astype(np.float32) * alpha
        region[:] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    return canvas


def draw_status(frame: np.ndarray, status: PipelineStatus,
                color: Tuple[int, int, int] = (255, 255, 255)) -> np.ndarray:
    """Draw the status line and the detected objects list on a copy of the frame."""
    out = frame.copy()

    def _flag(ok: bool, on: str, off: str) -> str:
        return on if ok else off

    line = "  ".join([
        "Model: " + _flag(status.model_loaded, "Loaded", "Not Loaded"),
        "Source: " + _flag(status.source_active, "Active", "Inactive"),
        "Detection: " + _flag(status.detection_running, "Running", "Stopped"),
        "Recording: " + _flag(status.recording, "Active", "Inactive"),
    ])
    cv2.putText(out, line, (10, 20), FONT, 0.45, color, 1, cv2.LINE_AA)
    if status.recording:
        cv2.circle(out, (out.shape[1] - 20, 20), 8, (0, 0, 255), -1)

    dets = status.current_detections
    if dets:
        y = 40
        cv2.putText(out, f"Detected Objects ({len(dets)})", (10, y), FONT, 0.45, color, 1, cv2.LINE_AA)
        for det in dets[:8]:
            y += 18
            text = f"{det.class_label} - Confidence: {det.confidence * 100:.1f}%"
            cv2.putText(out, text, (10, y), FONT, 0.45, color, 1, cv2.LINE_AA)
    return out
