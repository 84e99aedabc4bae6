"""Scale-to-fit geometry between source-pixel and display-pixel space.

A single uniform scale is used for both axes so boxes keep their shape; the
axis with slack is centered inside the container.
"""
from __future__ import annotations
import math
from fractions import Fraction
from typing import Iterable, List, Optional

from annotator.models import BBox, Detection, DisplayGeometry


def compute_display_geometry(native_width: int, native_height: int,
                             max_width: int, max_height: int) -> Optional[DisplayGeometry]:
    """Fit the source into the container, preserving aspect ratio.

    Returns None while the native dimensions are unknown (zero), which defers
    any drawing until the source reports its size.
    """
    nw, nh = int(native_width or 0), int(native_height or 0)
    mw, mh = int(max_width or 0), int(max_height or 0)
    if nw <= 0 or nh <= 0 or mw <= 0 or mh <= 0:
        return None

    # exact rational scale so 1920x1080 -> 640x360 does not floor to 639
    scale = min(Fraction(mw, nw), Fraction(mh, nh))
    dw = math.floor(nw * scale)
    dh = math.floor(nh * scale)
    return DisplayGeometry(
        source_width=nw,
        source_height=nh,
        display_width=dw,
        display_height=dh,
        container_width=mw,
        container_height=mh,
        scale=float(scale),
        offset_x=(mw - dw) // 2,
        offset_y=(mh - dh) // 2,
    )


def scale_bbox(bbox: BBox, scale: float) -> BBox:
    x, y, w, h = bbox
    return (x * scale, y * scale, w * scale, h * scale)


def unscale_bbox(bbox: BBox, scale: float) -> BBox:
    if scale == 0:
        raise ValueError("scale must be non-zero")
    x, y, w, h = bbox
    return (x / scale, y / scale, w / scale, h / scale)


def scale_detection(det: Detection, scale: float) -> Detection:
    return det.model_copy(update={"bbox": scale_bbox(det.bbox, scale)})


def scale_detections(dets: Iterable[Detection], scale: float) -> List[Detection]:
    return [scale_detection(d, scale) for d in dets]
