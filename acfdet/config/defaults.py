"""Default option values."""

import math
from typing import Any, Dict

from .options import (
    DetectorOptions, PyramidOptions, ChannelOptions, ColorOptions, GradMagOptions,
    GradHistOptions, NmsOptions, BoostOptions, TreeOptions,
    NmsType, OverlapDenominator, ColorSpace, SampleType, MergeMode,
    merge, is_set, UNSET,
)

DEFAULT_CONFIG: Dict[str, Any] = {
    # Channel features
    "shrink": 4,
    "color_enabled": True,
    "color_smooth": 1.0,
    "color_space": ColorSpace.LUV,
    "grad_mag_enabled": True,
    "grad_mag_color_chn": 0,
    "grad_mag_norm_rad": 5,
    "grad_mag_norm_const": 0.005,
    "grad_mag_full": False,
    "grad_hist_enabled": True,
    "grad_hist_n_orients": 6,
    "grad_hist_soft_bin": False,
    "grad_hist_use_hog": False,
    "grad_hist_clip_hog": 0.2,

    # Pyramid
    "n_per_oct": 8,
    "n_oct_up": 0,
    "n_approx": -1,  # -1 -> n_per_oct - 1
    "pad": (0, 0),
    "min_ds": (16, 16),
    "pyramid_smooth": 1.0,
    "concat": True,

    # Sliding window / cascade
    "model_ds": (100, 41),
    "model_ds_pad": (128, 64),
    "stride": 4,
    "casc_thr": -1.0,
    "casc_cal": 0.005,
    "n_weak": (128,),
    "sample_type": SampleType.FLOAT,

    # Suppression
    "nms_type": NmsType.MAXG,
    "nms_maxn": math.inf,
    "nms_radii": (0.15, 0.15, 1.0, 1.0),
    "nms_overlap": 0.65,
    "nms_ovr_dnm": OverlapDenominator.MIN,
    "nms_separate": False,

    # Boosting (training only)
    "tree_n_bins": 256,
    "tree_max_depth": 2,
    "tree_min_weight": 0.01,
    "tree_frac_ftrs": 1.0,
    "tree_n_threads": 16,
    "boost_discrete": True,
    "boost_verbose": False,
}


def default_channel_options() -> ChannelOptions:
    c = DEFAULT_CONFIG
    return ChannelOptions(
        shrink=c["shrink"],
        color=ColorOptions(
            enabled=c["color_enabled"], smooth=c["color_smooth"], color_space=c["color_space"],
        ),
        grad_mag=GradMagOptions(
            enabled=c["grad_mag_enabled"], color_chn=c["grad_mag_color_chn"],
            norm_rad=c["grad_mag_norm_rad"], norm_const=c["grad_mag_norm_const"],
            full=c["grad_mag_full"],
        ),
        grad_hist=GradHistOptions(
            enabled=c["grad_hist_enabled"], n_orients=c["grad_hist_n_orients"],
            soft_bin=c["grad_hist_soft_bin"], use_hog=c["grad_hist_use_hog"],
            clip_hog=c["grad_hist_clip_hog"],
        ),
        complete=True,
    )


def default_pyramid_options() -> PyramidOptions:
    c = DEFAULT_CONFIG
    return PyramidOptions(
        chns=default_channel_options(),
        n_per_oct=c["n_per_oct"],
        n_oct_up=c["n_oct_up"],
        n_approx=c["n_approx"],
        pad=c["pad"],
        min_ds=c["min_ds"],
        smooth=c["pyramid_smooth"],
        concat=c["concat"],
        complete=True,
    )


def default_nms_options() -> NmsOptions:
    c = DEFAULT_CONFIG
    return NmsOptions(
        type=c["nms_type"],
        maxn=c["nms_maxn"],
        radii=c["nms_radii"],
        overlap=c["nms_overlap"],
        ovr_dnm=c["nms_ovr_dnm"],
        separate=c["nms_separate"],
    )


def default_options() -> DetectorOptions:
    """A fully populated option tree (lambdas and nms thr/resize stay unset)."""
    c = DEFAULT_CONFIG
    return DetectorOptions(
        pyramid=default_pyramid_options(),
        model_ds=c["model_ds"],
        model_ds_pad=c["model_ds_pad"],
        nms=default_nms_options(),
        stride=c["stride"],
        casc_thr=c["casc_thr"],
        casc_cal=c["casc_cal"],
        n_weak=c["n_weak"],
        boost=BoostOptions(
            tree=TreeOptions(
                n_bins=c["tree_n_bins"], max_depth=c["tree_max_depth"],
                min_weight=c["tree_min_weight"], frac_ftrs=c["tree_frac_ftrs"],
                n_threads=c["tree_n_threads"],
            ),
            n_weak=c["n_weak"][-1],
            discrete=c["boost_discrete"],
            verbose=c["boost_verbose"],
        ),
        sample_type=c["sample_type"],
        name="",
    )


def resolve_channel_options(chns: ChannelOptions) -> ChannelOptions:
    """Fill unset channel options from the defaults and derive ``bin_size``."""
    resolved = merge(default_channel_options(), chns, MergeMode.REPLACE)
    if not is_set(resolved.grad_hist.bin_size):
        resolved.grad_hist.bin_size = resolved.shrink
    return resolved


def resolve_pyramid_options(pyramid: PyramidOptions) -> PyramidOptions:
    resolved = merge(default_pyramid_options(), pyramid, MergeMode.REPLACE)
    resolved.chns = resolve_channel_options(resolved.chns)
    if resolved.n_approx < 0:
        resolved.n_approx = resolved.n_per_oct - 1
    return resolved


def resolve_nms_options(nms: NmsOptions) -> NmsOptions:
    resolved = merge(default_nms_options(), nms, MergeMode.REPLACE)
    if not is_set(resolved.thr):
        resolved.thr = 0.0 if resolved.type is NmsType.MS else -math.inf
    return resolved


def resolve(options: DetectorOptions) -> DetectorOptions:
    """Overlay ``options`` on the defaults and fill derived values.

    ``pyramid.lambdas`` is left unset unless given explicitly, so the pyramid can
    tell supplied exponents from ones it has to estimate.
    """
    resolved = merge(default_options(), options, MergeMode.REPLACE)
    resolved.pyramid = resolve_pyramid_options(resolved.pyramid)
    resolved.nms = resolve_nms_options(resolved.nms)
    if not is_set(options.pyramid.min_ds) and is_set(resolved.model_ds):
        # the smallest useful level is one window
        resolved.pyramid.min_ds = tuple(resolved.model_ds)
    return resolved


__all__ = [
    "DEFAULT_CONFIG", "default_options", "default_channel_options",
    "default_pyramid_options", "default_nms_options", "resolve",
    "resolve_channel_options", "resolve_pyramid_options", "resolve_nms_options", "UNSET",
]
