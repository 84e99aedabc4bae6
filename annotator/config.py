"""
Configuration for the detection/overlay/recording pipeline.
"""
from pydantic import BaseModel
import os

class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    DEVICE: str = (os.getenv("DEVICE", "cpu") or "cpu")

    MODEL_NAME: str = os.getenv("MODEL_NAME", "yolov8n.pt")
    SCORE_THRESHOLD: float = float(os.getenv("SCORE_THRESHOLD", "0.5"))
    MAX_DETECTIONS: int = int(os.getenv("MAX_DETECTIONS", "20"))
    PRELOAD_MODEL: bool = os.getenv("PRELOAD_MODEL", "1") not in ("0", "false", "False")

    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    CAMERA_WIDTH: int = int(os.getenv("CAMERA_WIDTH", "640"))
    CAMERA_HEIGHT: int = int(os.getenv("CAMERA_HEIGHT", "480"))
    SOURCE_TIMEOUT: float = float(os.getenv("SOURCE_TIMEOUT", "5"))

    CONTAINER_WIDTH: int = int(os.getenv("CONTAINER_WIDTH", "640"))
    CONTAINER_HEIGHT: int = int(os.getenv("CONTAINER_HEIGHT", "480"))

    DETECTION_HZ: float = float(os.getenv("DETECTION_HZ", "10"))
    AUTO_DETECT: bool = os.getenv("AUTO_DETECT", "1") not in ("0", "false", "False")

    RECORD_CODEC: str = os.getenv("RECORD_CODEC", "VP90")
    RECORD_QUEUE_SIZE: int = int(os.getenv("RECORD_QUEUE_SIZE", "120"))
    RECORDINGS_DIR: str = os.getenv("RECORDINGS_DIR", "recordings")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG")

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize DEVICE: strip comments/extra words, lower-case, validate
        dev = (self.DEVICE or "cpu").strip().split()[0].lower()
        if dev not in ("cpu", "cuda"):
            dev = "cpu"
        object.__setattr__(self, "DEVICE", dev)

    @property
    def tick_interval(self) -> float:
        """Seconds between detection ticks."""
        return 1.0 / max(0.1, float(self.DETECTION_HZ))
