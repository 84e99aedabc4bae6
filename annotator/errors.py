"""
Error taxonomy for the annotation pipeline.
"""


class AnnotatorError(RuntimeError):
    """Base class for pipeline errors."""


class ModelLoadError(AnnotatorError):
    """Detector backend initialization or model fetch failed. Retry is allowed."""


class SourceAcquisitionError(AnnotatorError):
    """Camera unavailable, permission denied, or media could not be decoded."""


class InferenceError(AnnotatorError):
    """A single detection cycle failed. Never surfaced past the detector adapter."""


class RecorderError(AnnotatorError):
    """Invalid recorder start/stop sequencing or encoder failure."""
