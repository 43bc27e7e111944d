"""Multi-scale channel pyramid.

Channels are computed from scratch only at every ``n_approx + 1``-th scale
("real" scales). The scales in between are approximated by resampling the
channels of the nearest real scale and correcting each channel type with a
power law ``(s / s_real) ** -lambda``.
"""
from __future__ import annotations

import copy
import logging
import math
import time
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.defaults import resolve_pyramid_options
from ..config.options import ColorSpace, PyramidOptions, SampleType, is_set
from ..config.validation import OptionsValidator, check_octave_count, validate_image
from ..core.constants import DEFAULT_LAMBDAS, UINT8_SCALE
from ..core.entities import ChannelInfo, Pyramid, PyramidLevel
from ..core.exceptions import ConfigError, ValidationError
from ..utils.image_utils import conv_tri, im_pad, im_resample, resample_image, to_float_image
from .channel_service import ChannelExtractor, rgb_convert

logger = logging.getLogger(__name__)

# Fallback exponents by channel type name
_DEFAULT_LAMBDA_BY_TYPE = {
    "color channels": DEFAULT_LAMBDAS[0],
    "gradient magnitude": DEFAULT_LAMBDAS[1],
    "gradient histogram": DEFAULT_LAMBDAS[2],
}


def _round(x):
    """Round half away from zero (inputs are non-negative)."""
    return np.floor(np.asarray(x, dtype=np.float64) + 0.5)


def get_scales(n_per_oct: int, n_oct_up: int, min_ds: Sequence[int], shrink: int,
               size: Sequence[int]) -> Tuple[List[float], List[Tuple[float, float]]]:
    """Scales at which to sample an image of ``size = (h, w)``.

    Scales are spaced ``2 ** (-1 / n_per_oct)`` apart starting at
    ``2 ** n_oct_up`` and stop once the image would become smaller than
    ``min_ds``. Each scale is nudged (by at most a quarter of ``shrink``
    pixels) so that both resampled sides land as close as possible to
    multiples of ``shrink``. Returns the scales and the exact ``(h, w)``
    resample ratios.
    """
    if n_per_oct <= 0:
        raise ValidationError("octave subdivision must be positive", stage="pyramid", parameter="n_per_oct")
    size = np.asarray(size, dtype=np.float64)
    if np.any(size <= 0):
        return [], []

    n_scales = int(math.floor(n_per_oct * (n_oct_up + math.log2(np.min(size / np.asarray(min_ds)))) + 1))
    if n_scales <= 0:
        return [], []
    scales = 2.0 ** (-np.arange(n_scales) / n_per_oct + n_oct_up)

    d0, d1 = float(np.min(size)), float(np.max(size))
    steps = np.arange(100) / 100.0
    for i, s in enumerate(scales):
        base = _round(d0 * s / shrink) * shrink
        s0 = (base - 0.25 * shrink) / d0
        s1 = (base + 0.25 * shrink) / d0
        ss = steps * (s1 - s0) + s0
        es0 = np.abs(d0 * ss - _round(d0 * ss / shrink) * shrink)
        es1 = np.abs(d1 * ss - _round(d1 * ss / shrink) * shrink)
        scales[i] = ss[np.argmin(np.maximum(es0, es1))]

    keep = np.append(scales[:-1] != scales[1:], True)
    scales = scales[keep]

    out_scales, out_hw = [], []
    for s in scales:
        h1, w1 = _round(size * s / shrink) * shrink
        if h1 < shrink or w1 < shrink:
            continue
        out_scales.append(float(s))
        out_hw.append((float(h1 / size[0]), float(w1 / size[1])))
    return out_scales, out_hw


def nearest_real(index: int, real: Sequence[int]) -> int:
    """Real scale an approximated scale is derived from (ties go to the larger scale)."""
    return min(real, key=lambda r: (abs(index - r), r))


class PyramidBuilder:
    """Builds :class:`Pyramid` objects for one set of pyramid options."""

    def __init__(self, options: Optional[PyramidOptions] = None,
                 sample_type: SampleType = SampleType.FLOAT):
        self.options = resolve_pyramid_options(options or PyramidOptions())
        check_octave_count(self.options)
        errors = OptionsValidator.pyramid_errors(self.options)
        if errors:
            raise ConfigError("Invalid pyramid options: " + "; ".join(errors))
        self.sample_type = sample_type

        # color conversion happens once at full resolution
        self.color_space = self.options.chns.color.color_space
        chns = copy.deepcopy(self.options.chns)
        chns.color.color_space = ColorSpace.ORIG
        self._extractor = ChannelExtractor(chns)

    @property
    def shrink(self) -> int:
        return self.options.chns.shrink

    def channel_info(self) -> Tuple[ChannelInfo, ...]:
        """Channel types of every level."""
        info = self._extractor.channel_info()
        if self.color_space is ColorSpace.GRAY and self.options.chns.color.enabled:
            info = (ChannelInfo(info[0].name, 1, info[0].pad_with),) + info[1:]
        return info

    def prepare_image(self, image: np.ndarray) -> np.ndarray:
        """Float ``(H, W, C)`` image in the configured color space."""
        image = validate_image(image, stage="pyramid")
        planes = rgb_convert(to_float_image(image), self.color_space)
        return np.ascontiguousarray(np.moveaxis(planes, 0, -1))

    def channels_at(self, prepared: np.ndarray, size: Tuple[int, int]):
        """Channels of a prepared image resampled to ``size = (h, w)`` pixels."""
        return self._extractor.compute(resample_image(prepared, size))

    def build(self, image: np.ndarray) -> Pyramid:
        start = time.time()
        p = self.options
        shrink = p.chns.shrink
        image = self.prepare_image(image)
        sz = np.asarray(image.shape[:2], dtype=np.float64)

        scales, scales_hw = get_scales(p.n_per_oct, p.n_oct_up, p.min_ds, shrink, sz)
        n_scales = len(scales)
        info = self.channel_info()
        if n_scales == 0:
            logger.debug("Image %dx%d is smaller than min_ds %s, empty pyramid",
                         int(sz[0]), int(sz[1]), tuple(p.min_ds))
            lambdas, source = self._fallback_lambdas(info)
            return Pyramid(levels=(), info=info, lambdas=lambdas, lambdas_source=source, shrink=shrink)

        step = p.n_approx + 1
        real = list(range(0, n_scales, step))
        real_set = set(real)
        approx = [i for i in range(n_scales) if i not in real_set]
        data: List[Optional[Tuple[np.ndarray, ...]]] = [None] * n_scales
        sizes: List[Tuple[int, int]] = [None] * n_scales

        source_image = image
        for i in real:
            s = scales[i]
            sz1 = tuple(int(v) for v in _round(sz * s / shrink) * shrink)
            resampled = resample_image(source_image, sz1)
            if s == 0.5 and (p.n_approx > 0 or p.n_per_oct == 1):
                source_image = resampled
            stack = self._extractor.compute(resampled)
            info = stack.info
            data[i] = tuple(stack.data)
            sizes[i] = sz1

        lambdas, source = self._lambdas(data, scales, real, info)

        for i in approx:
            r = nearest_real(i, real)
            grid = tuple(int(v) for v in _round(sz * scales[i] / shrink))
            data[i] = tuple(
                im_resample(d, grid, (scales[i] / scales[r]) ** -lambdas[j])
                for j, d in enumerate(data[r])
            )
            sizes[i] = (grid[0] * shrink, grid[1] * shrink)

        levels = []
        for i in range(n_scales):
            types = [conv_tri(d, p.smooth) for d in data[i]]
            if any(p.pad):
                pad = (int(_round(p.pad[0] / shrink)), int(_round(p.pad[1] / shrink)))
                types = [im_pad(d, pad, info[j].pad_with) for j, d in enumerate(types)]
            if self.sample_type is SampleType.UINT8:
                types = [to_uint8(d) for d in types]
            if p.concat:
                types = [np.concatenate(types, axis=0)]
            levels.append(PyramidLevel(
                scale=scales[i], scale_hw=scales_hw[i], size=sizes[i],
                is_real=i in real_set, data=tuple(types),
            ))

        logger.debug(
            "Built pyramid: %d levels (%d real), lambdas=%s (%s) in %.1f ms",
            n_scales, len(real), tuple(round(v, 4) for v in lambdas), source,
            (time.time() - start) * 1000.0,
        )
        return Pyramid(levels=tuple(levels), info=tuple(info), lambdas=lambdas,
                       lambdas_source=source, shrink=shrink)

    def _fallback_lambdas(self, info: Sequence[ChannelInfo]) -> Tuple[Tuple[float, ...], str]:
        if is_set(self.options.lambdas):
            return tuple(float(v) for v in self.options.lambdas), "options"
        return tuple(_DEFAULT_LAMBDA_BY_TYPE.get(t.name, 0.0) for t in info), "default"

    def _lambdas(self, data, scales, real, info) -> Tuple[Tuple[float, ...], str]:
        """Exponents for the approximated scales.

        Supplied lambdas always win. Otherwise they are estimated from how the
        mean of each channel type changes between two real scales at or below
        scale 1; types whose statistics are degenerate fall back to defaults.
        """
        p = self.options
        if is_set(p.lambdas):
            return tuple(float(v) for v in p.lambdas), "options"
        defaults = tuple(_DEFAULT_LAMBDA_BY_TYPE.get(t.name, 0.0) for t in info)
        if p.n_approx == 0:
            return defaults, "default"

        candidates = [r for r in real if r >= p.n_oct_up * p.n_per_oct]
        if len(candidates) > 2:
            candidates = candidates[1:3]
        if len(candidates) < 2:
            logger.warning(
                "Too few real scales (%d) to estimate lambdas, using defaults %s",
                len(candidates), defaults,
            )
            return defaults, "default"

        i0, i1 = candidates
        ratio = math.log2(scales[i0] / scales[i1])
        lambdas = []
        for j, default in enumerate(defaults):
            f0 = float(np.mean(data[i0][j]))
            f1 = float(np.mean(data[i1][j]))
            if f0 > 0 and f1 > 0:
                lambdas.append(-math.log2(f0 / f1) / ratio)
            else:
                lambdas.append(default)
        return tuple(lambdas), "image"


def to_uint8(planes: np.ndarray) -> np.ndarray:
    """Store channels as fixed-point samples in [0, 255]."""
    return np.clip(np.floor(planes * UINT8_SCALE + 0.5), 0, 255).astype(np.uint8)


def build_pyramid(image: np.ndarray, options: Optional[PyramidOptions] = None,
                  sample_type: SampleType = SampleType.FLOAT) -> Pyramid:
    """Convenience wrapper around :class:`PyramidBuilder`."""
    return PyramidBuilder(options, sample_type).build(image)
