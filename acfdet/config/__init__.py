"""Configuration management package."""

from .options import (
    UNSET, is_set, MergeMode, NmsType, OverlapDenominator, ColorSpace, SampleType,
    ColorOptions, GradMagOptions, GradHistOptions, ChannelOptions, PyramidOptions,
    NmsOptions, TreeOptions, BoostOptions, DetectorOptions, merge, get_path, set_path,
)
from .defaults import DEFAULT_CONFIG, default_options, resolve
from .validation import validate_options, validate_image
from .persistence import (
    options_to_dict, options_from_dict, classifier_to_dict, classifier_from_dict,
    save_options, load_options, save_detector, load_detector, write_default_options,
)

__all__ = [
    "UNSET", "is_set", "MergeMode", "NmsType", "OverlapDenominator", "ColorSpace", "SampleType",
    "ColorOptions", "GradMagOptions", "GradHistOptions", "ChannelOptions", "PyramidOptions",
    "NmsOptions", "TreeOptions", "BoostOptions", "DetectorOptions", "merge", "get_path", "set_path",
    "DEFAULT_CONFIG", "default_options", "resolve", "validate_options", "validate_image",
    "options_to_dict", "options_from_dict", "classifier_to_dict", "classifier_from_dict",
    "save_options", "load_options", "save_detector", "load_detector", "write_default_options",
]
