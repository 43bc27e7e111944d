"""Saving and loading options and classifiers.

Both are written as plain key/value trees: JSON for ``.json`` files, YAML for
``.yaml``/``.yml``. Unset option fields are left out, so a saved partial tree
loads back as the same partial tree.
"""

import json
import logging
import math
import os
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import numpy as np
import yaml

from ..core.constants import SUPPORTED_MODEL_FORMATS
from ..core.entities import Classifier
from ..core.exceptions import ConfigError, ModelError
from .defaults import default_options
from .options import DetectorOptions, ENUM_FIELDS, UNSET, _is_group, is_set, parse_enum

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULTS_FILENAME = "acf_defaults.yaml"


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_encode(v) for v in value]
    if isinstance(value, float) and math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating,)):
        return float(value)
    return value


def _decode(name: str, value: Any) -> Any:
    if name in ENUM_FIELDS:
        return parse_enum(name, value)
    if value in ("inf", "-inf", "Infinity", "-Infinity"):
        return math.inf if not str(value).startswith("-") else -math.inf
    if isinstance(value, list):
        return tuple(_decode("", v) for v in value)
    return value


def options_to_dict(options) -> Dict[str, Any]:
    """Key/value tree of the set fields of an option group."""
    out: Dict[str, Any] = {}
    for f in fields(options):
        value = getattr(options, f.name)
        if _is_group(value):
            nested = options_to_dict(value)
            if nested:
                out[f.name] = nested
        elif is_set(value):
            out[f.name] = _encode(value)
    return out


def options_from_dict(data: Dict[str, Any], group_type=DetectorOptions, _path: str = ""):
    """Rebuild an option group from :func:`options_to_dict` output.

    Unknown keys are logged and skipped; enum tags are parsed here so bad
    values fail before any image is processed.
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping for '{_path or group_type.__name__}', got {type(data).__name__}")
    template = group_type()
    values = {}
    known = {f.name for f in fields(template)}
    for key, value in data.items():
        path = f"{_path}.{key}" if _path else key
        if key not in known:
            logger.warning(f"Ignoring unknown option '{path}'")
            continue
        current = getattr(template, key)
        if _is_group(current):
            values[key] = options_from_dict(value or {}, type(current), path)
        elif value is None:
            values[key] = UNSET
        else:
            values[key] = _decode(key, value)
    return group_type(**values)


def classifier_to_dict(classifier: Classifier) -> Dict[str, Any]:
    data = {
        "fids": classifier.fids.tolist(),
        "thrs": classifier.thrs.tolist(),
        "left": classifier.left.tolist(),
        "right": classifier.right.tolist(),
        "hs": classifier.hs.tolist(),
        "tree_depth": int(classifier.tree_depth),
    }
    if classifier.weights is not None:
        data["weights"] = classifier.weights.tolist()
    if classifier.depth is not None:
        data["depth"] = classifier.depth.tolist()
    if classifier.errs:
        data["errs"] = [float(v) for v in classifier.errs]
    if classifier.losses:
        data["losses"] = [float(v) for v in classifier.losses]
    return data


def classifier_from_dict(data: Dict[str, Any]) -> Classifier:
    """Build a classifier from either ``left``/``right`` or a toolbox ``child`` array."""
    try:
        extra = {
            "weights": data.get("weights"),
            "depth": data.get("depth"),
            "tree_depth": int(data.get("tree_depth", 0)),
            "errs": tuple(data.get("errs", ())),
            "losses": tuple(data.get("losses", ())),
        }
        if "child" in data:
            return Classifier.from_child_array(data["fids"], data["thrs"], data["child"], data["hs"], **extra)
        return Classifier(
            fids=data["fids"], thrs=data["thrs"], left=data["left"], right=data["right"],
            hs=data["hs"], **extra,
        )
    except KeyError as e:
        raise ModelError(f"Classifier is missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise ModelError(f"Malformed classifier arrays: {e}") from e


def _format_for(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_MODEL_FORMATS:
        raise ConfigError(
            f"Unsupported file type '{suffix}' for '{path}'. "
            f"Supported: {', '.join(SUPPORTED_MODEL_FORMATS)}"
        )
    return "json" if suffix == ".json" else "yaml"


def _write_tree(path: PathLike, data: Dict[str, Any]) -> Path:
    path = Path(path)
    fmt = _format_for(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        if fmt == "json":
            json.dump(data, f, indent=2, ensure_ascii=False)
        else:
            yaml.safe_dump(data, f, sort_keys=False)
    logger.info(f"Saved {path}")
    return path


def _read_tree(path: PathLike, error=ConfigError) -> Dict[str, Any]:
    path = Path(path)
    fmt = _format_for(path)
    if not path.is_file():
        raise error(f"File not found: '{path}'")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f) if fmt == "json" else yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise error(f"Failed to parse '{path}': {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise error(f"'{path}' does not contain a key/value mapping")
    logger.debug(f"Loaded {path}")
    return data


def save_options(path: PathLike, options: DetectorOptions) -> Path:
    return _write_tree(path, options_to_dict(options))


def load_options(path: PathLike) -> DetectorOptions:
    return options_from_dict(_read_tree(path))


def save_detector(path: PathLike, classifier: Classifier, options: DetectorOptions) -> Path:
    """Write options and classifier into one file."""
    return _write_tree(path, {
        "options": options_to_dict(options),
        "classifier": classifier_to_dict(classifier),
    })


def load_detector(path: PathLike) -> Tuple[DetectorOptions, Classifier]:
    data = _read_tree(path, error=ModelError)
    if "classifier" not in data:
        raise ModelError(f"'{path}' has no 'classifier' section")
    options = options_from_dict(data.get("options") or {})
    return options, classifier_from_dict(data["classifier"])


def write_default_options(directory: PathLike, filename: str = DEFAULTS_FILENAME) -> Path:
    """Write the full default option tree as an editable starting point."""
    directory = Path(directory)
    if directory.exists() and not directory.is_dir():
        raise ConfigError(f"'{directory}' is not a directory")
    os.makedirs(directory, exist_ok=True)
    return save_options(directory / filename, default_options())
