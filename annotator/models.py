"""
Pydantic data models shared by the pipeline, the API and the presentation layer.
"""
from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Literal, Tuple

BBox = Tuple[float, float, float, float]


class Detection(BaseModel):
    """One box + label + score; bbox is (x, y, width, height)."""
    model_config = ConfigDict(frozen=True)

    bbox: BBox
    class_label: str
    confidence: float = Field(ge=0.0, le=1.0)


class DisplayGeometry(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_width: int
    source_height: int
    display_width: int
    display_height: int
    container_width: int
    container_height: int
    scale: float
    offset_x: int = 0
    offset_y: int = 0


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    SWITCHING_SOURCE = "switching_source"


class RecorderState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    FINALIZING = "finalizing"


class Recording(BaseModel):
    """Finalized, encoded artifact of one recording session."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "video/webm"

    @property
    def size(self) -> int:
        return len(self.data)


class PipelineStatus(BaseModel):
    model_loaded: bool = False
    source_active: bool = False
    detection_running: bool = False
    recording: bool = False
    current_detections: List[Detection] = Field(default_factory=list)
    session_state: SessionState = SessionState.IDLE
    source_kind: Literal["live", "file", "none"] = "none"
    geometry: Optional[DisplayGeometry] = None
