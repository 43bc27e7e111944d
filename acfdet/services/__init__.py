"""Services package for the detection pipeline."""

from .channel_service import ChannelExtractor, compute_channels
from .pyramid_service import PyramidBuilder, build_pyramid, get_scales
from .cascade_service import CascadeEvaluator
from .suppression_service import suppress
from .detection_service import Detector
from .batch_service import BatchDetectionService

__all__ = [
    "ChannelExtractor", "compute_channels", "PyramidBuilder", "build_pyramid", "get_scales",
    "CascadeEvaluator", "suppress", "Detector", "BatchDetectionService",
]
