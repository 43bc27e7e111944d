"""acfdet - multi-scale object detection with aggregated channel features."""

from .core.constants import VERSION
from .core.entities import Detection, Classifier, Pyramid, PyramidLevel, ChannelStack
from .core.exceptions import ApplicationError, ValidationError, ConfigError, MergeConflictError, ModelError
from .config.options import DetectorOptions, PyramidOptions, ChannelOptions, NmsOptions, MergeMode, NmsType
from .services.detection_service import Detector
from .services.batch_service import BatchDetectionService
from .services.suppression_service import suppress
from .services.channel_service import compute_channels

__version__ = VERSION

__all__ = [
    "__version__", "Detection", "Classifier", "Pyramid", "PyramidLevel", "ChannelStack",
    "ApplicationError", "ValidationError", "ConfigError", "MergeConflictError", "ModelError",
    "DetectorOptions", "PyramidOptions", "ChannelOptions", "NmsOptions", "MergeMode", "NmsType",
    "Detector", "BatchDetectionService", "suppress", "compute_channels",
]
