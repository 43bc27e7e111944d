"""Option and input validation utilities."""

from __future__ import annotations
from typing import Any, List, Optional
from dataclasses import dataclass
import math

import numpy as np

from ..core.exceptions import ConfigError, ValidationError
from .options import (
    DetectorOptions, PyramidOptions, ChannelOptions, NmsOptions,
    NmsType, OverlapDenominator, ColorSpace, SampleType, is_set,
)


@dataclass
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool
    error_message: Optional[str] = None


class OptionsValidator:
    """Checks a resolved option tree before any image is processed."""

    @staticmethod
    def validate_positive_int(value: Any, field_name: str) -> ValidationResult:
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            return ValidationResult(False, f"{field_name} must be an integer, got {value!r}")
        if value <= 0:
            return ValidationResult(False, f"{field_name} must be > 0, got {value}")
        return ValidationResult(True)

    @staticmethod
    def validate_non_negative(value: Any, field_name: str) -> ValidationResult:
        if not isinstance(value, (int, float, np.integer, np.floating)) or isinstance(value, bool):
            return ValidationResult(False, f"{field_name} must be a number, got {value!r}")
        if value < 0:
            return ValidationResult(False, f"{field_name} must be >= 0, got {value}")
        return ValidationResult(True)

    @staticmethod
    def validate_size(value: Any, field_name: str, allow_zero: bool = False) -> ValidationResult:
        """Validate an (h, w) pair."""
        if not isinstance(value, (tuple, list)) or len(value) != 2:
            return ValidationResult(False, f"{field_name} must be an (h, w) pair, got {value!r}")
        low = 0 if allow_zero else 1
        if any(not isinstance(v, (int, np.integer)) or v < low for v in value):
            return ValidationResult(False, f"{field_name} entries must be integers >= {low}, got {value!r}")
        return ValidationResult(True)

    @staticmethod
    def validate_enum(value: Any, enum_type, field_name: str) -> ValidationResult:
        if not isinstance(value, enum_type):
            choices = ", ".join(m.value for m in enum_type)
            return ValidationResult(False, f"Invalid {field_name} {value!r}. Must be one of: {choices}")
        return ValidationResult(True)

    @classmethod
    def channel_errors(cls, chns: ChannelOptions) -> List[str]:
        checks = [
            cls.validate_positive_int(chns.shrink, "pyramid.chns.shrink"),
            cls.validate_enum(chns.color.color_space, ColorSpace, "pyramid.chns.color.color_space"),
            cls.validate_non_negative(chns.color.smooth, "pyramid.chns.color.smooth"),
            cls.validate_non_negative(chns.grad_mag.norm_rad, "pyramid.chns.grad_mag.norm_rad"),
            cls.validate_non_negative(chns.grad_mag.norm_const, "pyramid.chns.grad_mag.norm_const"),
            cls.validate_non_negative(chns.grad_mag.color_chn, "pyramid.chns.grad_mag.color_chn"),
            cls.validate_positive_int(chns.grad_hist.n_orients, "pyramid.chns.grad_hist.n_orients"),
            cls.validate_positive_int(chns.grad_hist.bin_size, "pyramid.chns.grad_hist.bin_size"),
            cls.validate_non_negative(chns.grad_hist.clip_hog, "pyramid.chns.grad_hist.clip_hog"),
        ]
        errors = [r.error_message for r in checks if not r.is_valid]
        if not (chns.color.enabled or chns.grad_mag.enabled or chns.grad_hist.enabled):
            errors.append("at least one channel type must be enabled")
        if chns.grad_hist.enabled and chns.grad_hist.bin_size != chns.shrink and not chns.grad_hist.use_hog:
            if chns.grad_hist.bin_size % chns.shrink and chns.shrink % chns.grad_hist.bin_size:
                errors.append(
                    "pyramid.chns.grad_hist.bin_size must divide or be a multiple of shrink"
                )
        return errors

    @classmethod
    def pyramid_errors(cls, pyramid: PyramidOptions) -> List[str]:
        checks = [
            cls.validate_positive_int(pyramid.n_per_oct, "pyramid.n_per_oct"),
            cls.validate_non_negative(pyramid.n_oct_up, "pyramid.n_oct_up"),
            cls.validate_non_negative(pyramid.n_approx, "pyramid.n_approx"),
            cls.validate_size(pyramid.pad, "pyramid.pad", allow_zero=True),
            cls.validate_size(pyramid.min_ds, "pyramid.min_ds"),
            cls.validate_non_negative(pyramid.smooth, "pyramid.smooth"),
        ]
        errors = [r.error_message for r in checks if not r.is_valid]
        errors.extend(cls.channel_errors(pyramid.chns))
        if is_set(pyramid.lambdas):
            n_types = sum(bool(e) for e in (
                pyramid.chns.color.enabled, pyramid.chns.grad_mag.enabled, pyramid.chns.grad_hist.enabled
            ))
            if len(pyramid.lambdas) != n_types:
                errors.append(
                    f"pyramid.lambdas needs one exponent per enabled channel type "
                    f"({n_types}), got {len(pyramid.lambdas)}"
                )
        return errors

    @classmethod
    def nms_errors(cls, nms: NmsOptions) -> List[str]:
        checks = [
            cls.validate_enum(nms.type, NmsType, "nms.type"),
            cls.validate_enum(nms.ovr_dnm, OverlapDenominator, "nms.ovr_dnm"),
            cls.validate_non_negative(nms.overlap, "nms.overlap"),
        ]
        errors = [r.error_message for r in checks if not r.is_valid]
        if not (isinstance(nms.maxn, (int, float)) and nms.maxn >= 1):
            errors.append(f"nms.maxn must be >= 1, got {nms.maxn!r}")
        if len(nms.radii) != 4 or any(r <= 0 for r in nms.radii):
            errors.append(f"nms.radii must be four positive numbers, got {nms.radii!r}")
        if is_set(nms.resize):
            if len(nms.resize) != 3 or (nms.resize[0] == 0 and nms.resize[1] == 0):
                errors.append(
                    "nms.resize must be (height_ratio, width_ratio, aspect_ratio) "
                    "with at least one non-zero ratio"
                )
            elif (nms.resize[0] == 0 or nms.resize[1] == 0) and not nms.resize[2] > 0:
                errors.append("nms.resize needs an aspect ratio when one ratio is 0")
        return errors

    @classmethod
    def detector_errors(cls, options: DetectorOptions) -> List[str]:
        checks = [
            cls.validate_size(options.model_ds, "model_ds"),
            cls.validate_size(options.model_ds_pad, "model_ds_pad"),
            cls.validate_positive_int(options.stride, "stride"),
            cls.validate_enum(options.sample_type, SampleType, "sample_type"),
        ]
        errors = [r.error_message for r in checks if not r.is_valid]
        if not isinstance(options.casc_thr, (int, float)) or math.isnan(options.casc_thr):
            errors.append(f"casc_thr must be a number, got {options.casc_thr!r}")
        errors.extend(cls.pyramid_errors(options.pyramid))
        errors.extend(cls.nms_errors(options.nms))
        if errors:
            return errors

        shrink = options.pyramid.chns.shrink
        if any(d > p for d, p in zip(options.model_ds, options.model_ds_pad)):
            errors.append(
                f"model_ds {tuple(options.model_ds)} must fit inside model_ds_pad "
                f"{tuple(options.model_ds_pad)}"
            )
        if any(p % shrink for p in options.model_ds_pad):
            errors.append(f"model_ds_pad {tuple(options.model_ds_pad)} must be a multiple of shrink {shrink}")
        if options.stride % shrink:
            errors.append(f"stride {options.stride} must be a multiple of shrink {shrink}")
        return errors


def check_octave_count(pyramid: PyramidOptions) -> None:
    """A pyramid needs at least one scale per octave."""
    n = pyramid.n_per_oct
    if isinstance(n, (int, np.integer)) and not isinstance(n, bool) and n <= 0:
        raise ValidationError(f"must be > 0, got {n}", stage="pyramid", parameter="n_per_oct")


def validate_options(options: DetectorOptions) -> DetectorOptions:
    """Raise :class:`ConfigError` listing every problem in a resolved tree."""
    check_octave_count(options.pyramid)
    errors = OptionsValidator.detector_errors(options)
    if errors:
        raise ConfigError("Invalid detector options: " + "; ".join(errors))
    return options


def validate_image(image: Any, stage: str = "channels") -> np.ndarray:
    """Check that ``image`` is a non-empty ``(H, W)`` or ``(H, W, C)`` array."""
    if image is None:
        raise ValidationError("image is None", stage=stage, parameter="image")
    image = np.asarray(image)
    if image.ndim not in (2, 3):
        raise ValidationError(
            f"expected an (H, W) or (H, W, C) array, got shape {image.shape}",
            stage=stage, parameter="image",
        )
    if image.size == 0 or image.shape[0] == 0 or image.shape[1] == 0:
        raise ValidationError(f"image is empty (shape {image.shape})", stage=stage, parameter="image")
    if image.ndim == 3 and image.shape[2] not in (1, 3):
        raise ValidationError(
            f"expected 1 or 3 color samples per pixel, got {image.shape[2]}",
            stage=stage, parameter="image",
        )
    return image
