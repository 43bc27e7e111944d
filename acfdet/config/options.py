"""Hierarchical detector options with partial overrides.

Every field starts out ``UNSET``. A set field always wins over an unset one;
how two set fields combine depends on the :class:`MergeMode`. Nested option
groups are merged field by field, so each leaf is resolved independently.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Tuple

from ..core.exceptions import ConfigError, MergeConflictError


class _Unset:
    """Marker for a field that has not been given a value."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (_Unset, ())


UNSET: Any = _Unset()


def is_set(value: Any) -> bool:
    return value is not UNSET


class MergeMode(Enum):
    """How a set override field combines with a set base field."""
    REPLACE = "replace"  # override wins whenever it is set
    FILL = "fill"        # override only fills base fields that are unset
    ERROR = "error"      # both set with different values is a conflict


class NmsType(Enum):
    NONE = "none"
    MAX = "max"
    MAXG = "maxg"
    MS = "ms"
    COVER = "cover"


class OverlapDenominator(Enum):
    UNION = "union"
    MIN = "min"


class ColorSpace(Enum):
    GRAY = "gray"
    RGB = "rgb"
    LUV = "luv"
    HSV = "hsv"
    ORIG = "orig"


class SampleType(Enum):
    """Storage type of the channel stack handed to the cascade."""
    FLOAT = "float"
    UINT8 = "uint8"


@dataclass(slots=True)
class ColorOptions:
    enabled: bool = UNSET
    smooth: float = UNSET
    color_space: ColorSpace = UNSET


@dataclass(slots=True)
class GradMagOptions:
    enabled: bool = UNSET
    color_chn: int = UNSET       # 0 = max over color channels, else 1-based channel
    norm_rad: int = UNSET
    norm_const: float = UNSET
    full: bool = UNSET           # orientations over [0, 2pi) instead of [0, pi)


@dataclass(slots=True)
class GradHistOptions:
    enabled: bool = UNSET
    bin_size: int = UNSET        # unset -> shrink
    n_orients: int = UNSET
    soft_bin: bool = UNSET
    use_hog: bool = UNSET
    clip_hog: float = UNSET


@dataclass(slots=True)
class ChannelOptions:
    shrink: int = UNSET
    color: ColorOptions = field(default_factory=ColorOptions)
    grad_mag: GradMagOptions = field(default_factory=GradMagOptions)
    grad_hist: GradHistOptions = field(default_factory=GradHistOptions)
    complete: bool = UNSET


@dataclass(slots=True)
class PyramidOptions:
    chns: ChannelOptions = field(default_factory=ChannelOptions)
    n_per_oct: int = UNSET
    n_oct_up: int = UNSET
    n_approx: int = UNSET            # -1 -> n_per_oct - 1
    lambdas: Tuple[float, ...] = UNSET
    pad: Tuple[int, int] = UNSET     # (h, w) in pixels
    min_ds: Tuple[int, int] = UNSET  # (h, w) in pixels
    smooth: float = UNSET
    concat: bool = UNSET
    complete: bool = UNSET


@dataclass(slots=True)
class NmsOptions:
    type: NmsType = UNSET
    thr: float = UNSET                           # unset -> -inf, 0 for ms
    maxn: float = UNSET
    radii: Tuple[float, float, float, float] = UNSET
    overlap: float = UNSET
    ovr_dnm: OverlapDenominator = UNSET
    resize: Tuple[float, float, float] = UNSET   # (height ratio, width ratio, aspect ratio)
    separate: bool = UNSET


@dataclass(slots=True)
class TreeOptions:
    n_bins: int = UNSET
    max_depth: int = UNSET
    min_weight: float = UNSET
    frac_ftrs: float = UNSET
    n_threads: int = UNSET


@dataclass(slots=True)
class BoostOptions:
    """Training parameters, carried so that a model's options round-trip."""
    tree: TreeOptions = field(default_factory=TreeOptions)
    n_weak: int = UNSET
    discrete: bool = UNSET
    verbose: bool = UNSET


@dataclass(slots=True)
class DetectorOptions:
    pyramid: PyramidOptions = field(default_factory=PyramidOptions)
    model_ds: Tuple[int, int] = UNSET      # (h, w) of the object in the window
    model_ds_pad: Tuple[int, int] = UNSET  # (h, w) of the padded window
    nms: NmsOptions = field(default_factory=NmsOptions)
    stride: int = UNSET
    casc_thr: float = UNSET
    casc_cal: float = UNSET
    n_weak: Tuple[int, ...] = UNSET
    boost: BoostOptions = field(default_factory=BoostOptions)
    sample_type: SampleType = UNSET
    name: str = UNSET


# Option groups that are nested inside their parents
OPTION_GROUPS = (
    ColorOptions, GradMagOptions, GradHistOptions, ChannelOptions, PyramidOptions,
    NmsOptions, TreeOptions, BoostOptions, DetectorOptions,
)

# Field name -> enum type, used to coerce strings when parsing
ENUM_FIELDS: Dict[str, type] = {
    "color_space": ColorSpace,
    "type": NmsType,
    "ovr_dnm": OverlapDenominator,
    "sample_type": SampleType,
}


def _is_group(value: Any) -> bool:
    return is_dataclass(value) and not isinstance(value, type)


def merge(base, override, mode: MergeMode = MergeMode.REPLACE, _path: str = ""):
    """Combine two option trees of the same type into a new tree.

    Neither input is modified. Under ``MergeMode.ERROR`` a field set on both
    sides to different values raises :class:`MergeConflictError`.
    """
    if type(base) is not type(override):
        raise ConfigError(
            f"Cannot merge {type(override).__name__} into {type(base).__name__}"
            + (f" at '{_path}'" if _path else "")
        )
    if not isinstance(mode, MergeMode):
        raise ConfigError(f"Unknown merge mode: {mode!r}")

    values = {}
    for f in fields(base):
        path = f"{_path}.{f.name}" if _path else f.name
        a = getattr(base, f.name)
        b = getattr(override, f.name)
        if _is_group(a):
            values[f.name] = merge(a, b, mode, path)
        elif not is_set(b):
            values[f.name] = copy.deepcopy(a)
        elif not is_set(a):
            values[f.name] = copy.deepcopy(b)
        elif mode is MergeMode.REPLACE:
            values[f.name] = copy.deepcopy(b)
        elif mode is MergeMode.FILL:
            values[f.name] = copy.deepcopy(a)
        elif a != b:
            raise MergeConflictError(path, a, b)
        else:
            values[f.name] = copy.deepcopy(a)
    return type(base)(**values)


def unset_fields(options, _path: str = "") -> list:
    """Dotted paths of every leaf field that is still ``UNSET``."""
    missing = []
    for f in fields(options):
        path = f"{_path}.{f.name}" if _path else f.name
        value = getattr(options, f.name)
        if _is_group(value):
            missing.extend(unset_fields(value, path))
        elif not is_set(value):
            missing.append(path)
    return missing


def get_path(options, path: str) -> Any:
    """Read a dotted field path, e.g. ``pyramid.chns.shrink``."""
    value = options
    for part in path.split("."):
        if not hasattr(value, part):
            raise ConfigError(f"Unknown option '{path}'")
        value = getattr(value, part)
    return value


def set_path(options, path: str, value: Any):
    """Return a copy of ``options`` with one dotted field path replaced."""
    result = copy.deepcopy(options)
    parts = path.split(".")
    target = result
    for part in parts[:-1]:
        if not hasattr(target, part) or not _is_group(getattr(target, part)):
            raise ConfigError(f"Unknown option group '{part}' in '{path}'")
        target = getattr(target, part)
    if parts[-1] not in {f.name for f in fields(target)}:
        raise ConfigError(f"Unknown option '{path}'")
    if parts[-1] in ENUM_FIELDS and isinstance(value, str):
        value = parse_enum(parts[-1], value)
    setattr(target, parts[-1], value)
    return result


def parse_enum(field_name: str, value: Any):
    """Resolve a string tag into its enum member, rejecting unknown tags."""
    enum_type = ENUM_FIELDS[field_name]
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_type)
        raise ConfigError(f"Invalid {field_name} '{value}'. Must be one of: {choices}") from None


def fields_of(group_type) -> set:
    """Field names of an option group class."""
    return {f.name for f in fields(group_type)}
