"""Channel feature extraction.

An image becomes a :class:`ChannelStack` of up to three channel types, each
area-downsampled by the shrink factor:

* color channels (gray, RGB, LUV or HSV), smoothed with a triangle filter;
* gradient magnitude, optionally normalised by its local average;
* gradient orientation histograms, one plane per orientation bin.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import cv2
import numpy as np

from ..config.defaults import resolve_channel_options
from ..config.options import ChannelOptions, ColorSpace
from ..config.validation import OptionsValidator, validate_image
from ..core import constants as C
from ..core.entities import ChannelInfo, ChannelStack, PAD_REPLICATE, PAD_ZERO
from ..core.exceptions import ConfigError, ValidationError
from ..utils.image_utils import conv_tri, im_resample, to_float_image, crop_to_multiple

logger = logging.getLogger(__name__)

_RGB_TO_XYZ = np.array(C.RGB_TO_XYZ, dtype=np.float32)
_GRAY_WEIGHTS = np.array([0.2989360213, 0.5870430745, 0.1140209043], dtype=np.float32)
_HOG_EPS = 1e-4


def rgb_to_luv(rgb: np.ndarray) -> np.ndarray:
    """Map an ``(H, W, 3)`` RGB image in [0, 1] to normalised ``(3, H, W)`` LUV.

    L is scaled by 1/270; u and v are shifted by 88/270 and 134/270 so every
    output lies roughly in [0, 1].
    """
    xyz = rgb.reshape(-1, 3) @ _RGB_TO_XYZ.T
    x, y, z = xyz[:, 0], xyz[:, 1], xyz[:, 2]
    inv = 1.0 / (x + 15.0 * y + 3.0 * z + np.float32(1e-35))
    L = np.where(y > C.LUV_Y0, 116.0 * np.cbrt(y) - 16.0, y * C.LUV_A) * C.LUV_MAXI
    u = L * (52.0 * x * inv - 13.0 * C.LUV_UN) - C.LUV_MINU
    v = L * (117.0 * y * inv - 13.0 * C.LUV_VN) - C.LUV_MINV
    h, w = rgb.shape[:2]
    return np.stack([L, u, v]).astype(np.float32).reshape(3, h, w)


def rgb_convert(image: np.ndarray, color_space: ColorSpace) -> np.ndarray:
    """Convert a float ``(H, W, C)`` image into ``(C', H, W)`` color planes."""
    if image.ndim == 2:
        image = image[:, :, None]
    n = image.shape[2]

    if color_space is ColorSpace.ORIG:
        return np.ascontiguousarray(np.moveaxis(image, -1, 0), dtype=np.float32)
    if color_space is ColorSpace.GRAY:
        gray = image[:, :, 0] if n == 1 else image @ _GRAY_WEIGHTS
        return gray[None].astype(np.float32)

    if n == 1:
        image = np.repeat(image, 3, axis=2)
    image = np.ascontiguousarray(image, dtype=np.float32)

    if color_space is ColorSpace.RGB:
        return np.ascontiguousarray(np.moveaxis(image, -1, 0))
    if color_space is ColorSpace.LUV:
        return rgb_to_luv(image)
    if color_space is ColorSpace.HSV:
        hsv = cv2.cvtColor(image, cv2.COLOR_RGB2HSV)
        hsv[:, :, 0] /= 360.0
        return np.ascontiguousarray(np.moveaxis(hsv, -1, 0))
    raise ConfigError(f"Unknown color space: {color_space!r}")


def gradient_mag(planes: np.ndarray, color_chn: int = 0, norm_rad: int = 0,
                 norm_const: float = 0.005, full: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    """Gradient magnitude ``M`` and orientation ``O`` of ``(C, H, W)`` planes.

    Per pixel the channel with the largest gradient is used unless
    ``color_chn`` (1-based) selects one. ``O`` lies in [0, pi), or [0, 2pi)
    when ``full``.
    """
    if color_chn > 0:
        planes = planes[color_chn - 1:color_chn]
    gy, gx = np.gradient(planes, axis=(1, 2)) if planes.shape[1] > 1 and planes.shape[2] > 1 \
        else (np.zeros_like(planes), np.zeros_like(planes))
    mag2 = gx * gx + gy * gy

    best = np.argmax(mag2, axis=0)[None]
    gx = np.take_along_axis(gx, best, axis=0)[0]
    gy = np.take_along_axis(gy, best, axis=0)[0]
    M = np.sqrt(np.take_along_axis(mag2, best, axis=0)[0]).astype(np.float32)

    period = 2.0 * math.pi if full else math.pi
    O = np.mod(np.arctan2(gy, gx), period).astype(np.float32)
    # arctan2 of a negative zero can land exactly on the period
    O[O >= period] = 0.0

    if norm_rad > 0:
        S = conv_tri(M, norm_rad)
        M = M / (S + np.float32(norm_const))
    return M, O


def gradient_hist(M: np.ndarray, O: np.ndarray, bin_size: int, n_orients: int,
                  soft_bin: bool = False, use_hog: bool = False, clip_hog: float = 0.2,
                  full: bool = False) -> np.ndarray:
    """Orientation histograms over ``bin_size`` x ``bin_size`` cells.

    Each pixel votes its magnitude (averaged over the cell). With ``soft_bin``
    a vote is split linearly between the two nearest orientation bins,
    otherwise it goes to the nearest bin. ``use_hog`` applies the four HOG
    block normalisations and returns ``4 * n_orients`` planes.
    """
    M = crop_to_multiple(M, bin_size)
    O = crop_to_multiple(O, bin_size)
    hb, wb = M.shape[0] // bin_size, M.shape[1] // bin_size
    o = O * (n_orients / (2.0 * math.pi if full else math.pi))
    m = M * np.float32(1.0 / (bin_size * bin_size))

    if soft_bin:
        o0 = np.floor(o).astype(np.int64)
        w1 = (o - o0).astype(np.float32)
        o0 %= n_orients
        o1 = (o0 + 1) % n_orients
        votes = ((o0, m * (1.0 - w1)), (o1, m * w1))
    else:
        o0 = np.floor(o + 0.5).astype(np.int64) % n_orients
        votes = ((o0, m),)

    H = np.zeros((n_orients, hb, wb), dtype=np.float32)
    for k in range(n_orients):
        plane = np.zeros_like(m)
        for bins, weight in votes:
            plane += np.where(bins == k, weight, 0.0).astype(np.float32)
        H[k] = plane.reshape(hb, bin_size, wb, bin_size).sum(axis=(1, 3))

    if use_hog:
        H = hog_normalize(H, clip_hog)
    return H


def hog_normalize(H: np.ndarray, clip: float) -> np.ndarray:
    """Normalise each cell by the energy of the four 2x2 blocks containing it."""
    n_orients, hb, wb = H.shape
    energy = np.pad((H * H).sum(axis=0), 1, mode="constant")
    groups = []
    for dy in (0, 1):
        for dx in (0, 1):
            block = (energy[dy:dy + hb, dx:dx + wb] + energy[dy + 1:dy + hb + 1, dx:dx + wb]
                     + energy[dy:dy + hb, dx + 1:dx + wb + 1] + energy[dy + 1:dy + hb + 1, dx + 1:dx + wb + 1])
            norm = 1.0 / np.sqrt(block + _HOG_EPS)
            groups.append(np.minimum(H * norm[None], np.float32(clip)))
    return np.concatenate(groups, axis=0).astype(np.float32)


class ChannelExtractor:
    """Computes channel stacks for images with a fixed set of channel options."""

    def __init__(self, options: Optional[ChannelOptions] = None):
        self.options = resolve_channel_options(options or ChannelOptions())
        errors = OptionsValidator.channel_errors(self.options)
        if errors:
            raise ConfigError("Invalid channel options: " + "; ".join(errors))

    @property
    def shrink(self) -> int:
        return self.options.shrink

    def channel_info(self) -> Tuple[ChannelInfo, ...]:
        """Describe the channel types produced, without computing them."""
        p = self.options
        info = []
        if p.color.enabled:
            n = 1 if p.color.color_space is ColorSpace.GRAY else 3
            info.append(ChannelInfo("color channels", n, PAD_REPLICATE))
        if p.grad_mag.enabled:
            info.append(ChannelInfo("gradient magnitude", 1, PAD_ZERO))
        if p.grad_hist.enabled:
            n = p.grad_hist.n_orients * (4 if p.grad_hist.use_hog else 1)
            info.append(ChannelInfo("gradient histogram", n, PAD_ZERO))
        return tuple(info)

    def compute(self, image: np.ndarray) -> ChannelStack:
        """Compute all enabled channel types for an RGB (or gray) image."""
        image = validate_image(image, stage="channels")
        p = self.options
        shrink = p.shrink

        image = crop_to_multiple(to_float_image(image), shrink)
        if image.shape[0] == 0 or image.shape[1] == 0:
            raise ValidationError(
                f"image must be at least {shrink}x{shrink} pixels",
                stage="channels", parameter="image",
            )
        h, w = image.shape[0] // shrink, image.shape[1] // shrink

        data, info = [], []

        planes = conv_tri(rgb_convert(image, p.color.color_space), p.color.smooth)
        if p.color.enabled:
            data.append(im_resample(planes, (h, w)))
            info.append(ChannelInfo("color channels", planes.shape[0], PAD_REPLICATE))

        if p.grad_mag.enabled or p.grad_hist.enabled:
            M, O = gradient_mag(
                planes, p.grad_mag.color_chn, p.grad_mag.norm_rad,
                p.grad_mag.norm_const, p.grad_mag.full,
            )
            if p.grad_mag.enabled:
                data.append(im_resample(M[None], (h, w)))
                info.append(ChannelInfo("gradient magnitude", 1, PAD_ZERO))
            if p.grad_hist.enabled:
                gh = p.grad_hist
                H = gradient_hist(
                    M, O, gh.bin_size, gh.n_orients, gh.soft_bin,
                    gh.use_hog, gh.clip_hog, p.grad_mag.full,
                )
                data.append(im_resample(H, (h, w)))
                info.append(ChannelInfo("gradient histogram", H.shape[0], PAD_ZERO))

        logger.debug("Computed %d channel types at %dx%d", len(data), h, w)
        return ChannelStack(data=tuple(data), info=tuple(info))


def compute_channels(image: np.ndarray, options: Optional[ChannelOptions] = None) -> ChannelStack:
    """Convenience wrapper around :class:`ChannelExtractor`."""
    return ChannelExtractor(options).compute(image)
