"""Detector pipeline: pyramid -> cascade -> suppression."""

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from ..config.defaults import resolve
from ..config.options import DetectorOptions, NmsOptions, fields_of, set_path
from ..config.persistence import load_detector, save_detector
from ..config.validation import validate_options
from ..core.entities import Classifier, Detection, Pyramid
from ..core.exceptions import ConfigError, ValidationError
from .cascade_service import CascadeEvaluator
from .pyramid_service import PyramidBuilder
from .suppression_service import suppress

logger = logging.getLogger(__name__)

# Parameters that can change on a trained detector, and where they live
MODIFIABLE: Dict[str, str] = {
    "n_per_oct": "pyramid.n_per_oct",
    "n_oct_up": "pyramid.n_oct_up",
    "n_approx": "pyramid.n_approx",
    "lambdas": "pyramid.lambdas",
    "pad": "pyramid.pad",
    "min_ds": "pyramid.min_ds",
    "nms": "nms",
    "stride": "stride",
    "casc_thr": "casc_thr",
    "casc_cal": "casc_cal",
}


class Detector:
    """Multi-scale sliding-window detector built from a boosted classifier.

    The detector is immutable once constructed and can be shared between
    threads; :meth:`modify` returns a new instance.

    ``classifier`` holds the uncalibrated leaf outputs; ``casc_cal`` is added
    to every leaf when the detector is built.
    """

    def __init__(self, classifier: Classifier, options: Optional[DetectorOptions] = None):
        """Initialize detector.

        Args:
            classifier: Trained tree ensemble
            options: Partial options, unset fields fall back to the defaults

        Raises:
            ConfigError: If the resolved options are inconsistent
        """
        self._user_options = options or DetectorOptions()
        self.options = validate_options(resolve(self._user_options))
        self.raw_classifier = classifier
        self.classifier = classifier.calibrated(self.options.casc_cal)

        o = self.options
        self._builder = PyramidBuilder(o.pyramid, o.sample_type)
        self._evaluator = CascadeEvaluator(
            self.classifier, o.model_ds, o.model_ds_pad, o.stride, o.casc_thr,
            o.pyramid.chns.shrink, o.pyramid.pad,
        )
        logger.debug(
            "Detector ready: %d trees, window %s in %s, stride %d, casc_thr %.4f",
            classifier.n_trees, tuple(o.model_ds), tuple(o.model_ds_pad), o.stride, o.casc_thr,
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Detector":
        """Load options and classifier saved with :meth:`save`."""
        options, classifier = load_detector(path)
        return cls(classifier, options)

    def save(self, path: Union[str, Path]) -> Path:
        return save_detector(path, self.raw_classifier, self._user_options)

    @property
    def shrink(self) -> int:
        return self.options.pyramid.chns.shrink

    def compute_pyramid(self, image: np.ndarray) -> Pyramid:
        """Channel pyramid the detector would scan, for diagnostics."""
        return self._builder.build(image)

    def detect_pyramid(self, pyramid: Pyramid) -> List[Detection]:
        """Run the cascade over every level of a precomputed pyramid and suppress.

        Args:
            pyramid: Pyramid built with the same channel options

        Returns:
            Final detections ordered by descending score
        """
        if pyramid.shrink != self.shrink:
            raise ValidationError(
                f"pyramid was built with shrink {pyramid.shrink}, detector expects {self.shrink}",
                stage="cascade", parameter="shrink",
            )
        candidates = self._evaluator.evaluate_pyramid(pyramid.levels)
        return suppress(candidates, self.options.nms)

    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect objects in an RGB (or gray) image.

        Args:
            image: ``(H, W)`` or ``(H, W, 3)`` array, uint8 or float in [0, 1]

        Returns:
            Detections with boxes in image pixels, ordered by descending score
        """
        start = time.time()
        pyramid = self.compute_pyramid(image)
        t_pyramid = time.time()
        candidates = self._evaluator.evaluate_pyramid(pyramid.levels)
        t_cascade = time.time()
        detections = suppress(candidates, self.options.nms)
        logger.debug(
            "Detected %d objects (%d candidates, %d levels): pyramid %.1f ms, "
            "cascade %.1f ms, nms %.1f ms",
            len(detections), len(candidates), len(pyramid),
            (t_pyramid - start) * 1000.0, (t_cascade - t_pyramid) * 1000.0,
            (time.time() - t_cascade) * 1000.0,
        )
        return detections

    def __call__(self, image: np.ndarray) -> List[Detection]:
        return self.detect(image)

    def modify(self, **overrides: Any) -> "Detector":
        """Copy of the detector with some run-time parameters changed.

        Accepts ``n_per_oct``, ``n_oct_up``, ``n_approx``, ``lambdas``, ``pad``,
        ``min_ds``, ``stride``, ``casc_thr``, ``casc_cal`` and ``nms`` (an
        :class:`NmsOptions` or a dict of its fields). Changing ``casc_cal``
        shifts every leaf output by the difference to the previous value.
        """
        options = self._user_options
        for key, value in overrides.items():
            if key not in MODIFIABLE:
                raise ConfigError(
                    f"'{key}' cannot be modified on a trained detector; "
                    f"supported: {', '.join(sorted(MODIFIABLE))}"
                )
            if key == "nms":
                options = self._with_nms(options, value)
            else:
                if isinstance(value, list):
                    value = tuple(value)
                options = set_path(options, MODIFIABLE[key], value)
        if "casc_cal" in overrides:
            logger.info(
                "Recalibrating cascade: casc_cal %.4f -> %.4f",
                self.options.casc_cal, overrides["casc_cal"],
            )
        return Detector(self.raw_classifier, options)

    @staticmethod
    def _with_nms(options: DetectorOptions, value) -> DetectorOptions:
        if isinstance(value, NmsOptions):
            return replace(options, nms=value)
        if not isinstance(value, dict):
            raise ConfigError(f"nms must be NmsOptions or a dict, got {type(value).__name__}")
        known = fields_of(NmsOptions)
        for name, v in value.items():
            if name not in known:
                raise ConfigError(f"Unknown option 'nms.{name}'")
            options = set_path(options, f"nms.{name}", tuple(v) if isinstance(v, list) else v)
        return options
