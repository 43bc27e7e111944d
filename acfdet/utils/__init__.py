"""Utility functions package."""

from .geometry import (
    xywh_to_xyxy, xyxy_to_xywh, overlap, overlap_matrix, union_area,
    overlap_with_union, resize_box,
)
from .image_utils import conv_tri, im_resample, im_pad, resample_image, to_float_image

__all__ = [
    "xywh_to_xyxy", "xyxy_to_xywh", "overlap", "overlap_matrix", "union_area",
    "overlap_with_union", "resize_box",
    "conv_tri", "im_resample", "im_pad", "resample_image", "to_float_image",
]
