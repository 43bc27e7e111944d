"""Image processing utilities.

Multi-plane arrays are laid out ``(C, H, W)``; single planes ``(H, W)``.
OpenCV works on ``(H, W, C)`` so planes are moved in and out around each call.
"""

import cv2
import numpy as np
from typing import Tuple

from ..core.entities import PAD_REPLICATE, PAD_ZERO


def _to_hwc(planes: np.ndarray) -> np.ndarray:
    if planes.ndim == 2:
        return planes
    return np.ascontiguousarray(np.moveaxis(planes, 0, -1))


def _to_chw(image: np.ndarray, n_planes: int) -> np.ndarray:
    if image.ndim == 2:
        image = image[:, :, None]
    return np.ascontiguousarray(np.moveaxis(image, -1, 0)).reshape(n_planes, *image.shape[:2])


def to_float_image(image: np.ndarray) -> np.ndarray:
    """Convert an ``(H, W[, C])`` image to float32 in [0, 1]."""
    if image.dtype == np.uint8:
        return image.astype(np.float32) / 255.0
    if image.dtype == np.uint16:
        return image.astype(np.float32) / 65535.0
    return image.astype(np.float32, copy=False)


def triangle_kernel(r: float) -> np.ndarray:
    """1D triangle filter of radius ``r``.

    For ``r <= 1`` the kernel is ``[1 p 1] / (2 + p)`` with ``p = 12/r/(r+2) - 2``,
    which allows fractional radii; for larger radii it is the integer triangle
    ``[1 .. r+1 .. 1] / (r+1)^2``.
    """
    if r <= 0:
        return np.ones(1, dtype=np.float32)
    if r <= 1:
        p = 12.0 / r / (r + 2.0) - 2.0
        return (np.array([1.0, p, 1.0]) / (2.0 + p)).astype(np.float32)
    r = int(round(r))
    k = np.concatenate([np.arange(1, r + 2), np.arange(r, 0, -1)]).astype(np.float32)
    return k / np.float32((r + 1) ** 2)


def conv_tri(planes: np.ndarray, r: float, s: int = 1) -> np.ndarray:
    """Separable triangle smoothing with symmetric borders, then optional
    downsampling by ``s``."""
    planes = np.asarray(planes, dtype=np.float32)
    if r <= 0:
        out = planes.copy()
    else:
        k = triangle_kernel(r)
        n_planes = 1 if planes.ndim == 2 else planes.shape[0]
        filtered = cv2.sepFilter2D(_to_hwc(planes), cv2.CV_32F, k, k, borderType=cv2.BORDER_REFLECT)
        out = filtered if planes.ndim == 2 else _to_chw(filtered, n_planes)
    if s > 1:
        out = np.ascontiguousarray(out[..., ::s, ::s])
    return out


_MAX_RESIZE_CHANNELS = 4


def _resize(image: np.ndarray, h: int, w: int, interpolation: int) -> np.ndarray:
    """``cv2.resize`` on an ``(H, W[, C])`` array with any number of channels.

    Area interpolation handles at most four channels per call, so wider
    arrays are resized in groups and restacked.
    """
    if image.ndim == 2 or image.shape[2] <= _MAX_RESIZE_CHANNELS:
        resized = cv2.resize(image, (w, h), interpolation=interpolation)
        if image.ndim == 3 and resized.ndim == 2:
            resized = resized[:, :, None]
        return resized
    groups = [
        _resize(np.ascontiguousarray(image[:, :, i:i + _MAX_RESIZE_CHANNELS]), h, w, interpolation)
        for i in range(0, image.shape[2], _MAX_RESIZE_CHANNELS)
    ]
    return np.concatenate(groups, axis=2)


def im_resample(planes: np.ndarray, size: Tuple[int, int], nrm: float = 1.0) -> np.ndarray:
    """Resample to ``size = (h, w)`` and multiply by ``nrm``.

    Downsampling averages over pixel areas, upsampling is bilinear.
    """
    planes = np.asarray(planes, dtype=np.float32)
    h, w = int(size[0]), int(size[1])
    h0, w0 = planes.shape[-2:]
    if (h, w) == (h0, w0):
        out = planes.copy()
    else:
        interpolation = cv2.INTER_AREA if (h <= h0 and w <= w0) else cv2.INTER_LINEAR
        n_planes = 1 if planes.ndim == 2 else planes.shape[0]
        resized = _resize(_to_hwc(planes), h, w, interpolation)
        out = resized if planes.ndim == 2 else _to_chw(resized, n_planes)
    if nrm != 1.0:
        out *= np.float32(nrm)
    return out


def resample_image(image: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Resample an ``(H, W[, C])`` float image to ``size = (h, w)``."""
    h, w = int(size[0]), int(size[1])
    if image.shape[:2] == (h, w):
        return image
    interpolation = cv2.INTER_AREA if (h <= image.shape[0] and w <= image.shape[1]) else cv2.INTER_LINEAR
    return _resize(image, h, w, interpolation)


def im_pad(planes: np.ndarray, pad_hw: Tuple[int, int], mode: str = PAD_ZERO) -> np.ndarray:
    """Pad ``pad_hw[0]`` rows above and below and ``pad_hw[1]`` columns left and right."""
    ph, pw = int(pad_hw[0]), int(pad_hw[1])
    if ph == 0 and pw == 0:
        return planes
    widths = [(0, 0)] * (planes.ndim - 2) + [(ph, ph), (pw, pw)]
    if mode == PAD_REPLICATE:
        return np.pad(planes, widths, mode="edge")
    if mode == PAD_ZERO:
        return np.pad(planes, widths, mode="constant")
    raise ValueError(f"Unknown pad mode '{mode}'")


def crop_to_multiple(image: np.ndarray, k: int) -> np.ndarray:
    """Crop the bottom/right border so both sides are multiples of ``k``."""
    h, w = image.shape[:2]
    return image[: h - h % k, : w - w % k]
