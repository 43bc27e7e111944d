"""Core domain entities and constants."""

from .entities import (
    Detection, ChannelInfo, ChannelStack, PyramidLevel, Pyramid, Classifier, BBox,
    PAD_REPLICATE, PAD_ZERO,
)
from .exceptions import (
    ApplicationError, DetectionError, ValidationError, ConfigError,
    MergeConflictError, ModelError,
)
from .constants import APP_NAME, VERSION, SUPPORTED_MODEL_FORMATS
from .worker_pool import WorkerPool

__all__ = [
    "Detection", "ChannelInfo", "ChannelStack", "PyramidLevel", "Pyramid", "Classifier", "BBox",
    "PAD_REPLICATE", "PAD_ZERO",
    "ApplicationError", "DetectionError", "ValidationError", "ConfigError",
    "MergeConflictError", "ModelError",
    "APP_NAME", "VERSION", "SUPPORTED_MODEL_FORMATS", "WorkerPool",
]
