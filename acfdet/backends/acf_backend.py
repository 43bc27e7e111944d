"""ACF backend: detectors loaded from saved option/classifier files."""
import os
from typing import List, Dict, Any, Optional
import numpy as np
from .base_backend import BaseBackend
from ..core.constants import SUPPORTED_MODEL_FORMATS
from ..core.entities import Classifier, Detection
from ..core.exceptions import ApplicationError, ModelError
from ..config.options import DetectorOptions
from ..services.detection_service import Detector

class AcfBackend(BaseBackend):
    """Backend around :class:`Detector`.

    ``config`` may hold detector overrides under the keys accepted by
    :meth:`Detector.modify`; they are applied after loading.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.detector: Optional[Detector] = None
        self.model_path = None

    def load_model(self, model_path: str) -> bool:
        """Load a detector saved with ``Detector.save``."""
        detector = Detector.from_file(model_path)
        self._set_detector(detector, model_path)
        return True

    def load_classifier(self, classifier: Classifier, options: Optional[DetectorOptions] = None) -> bool:
        """Use an in-memory classifier instead of a file."""
        self._set_detector(Detector(classifier, options), None)
        return True

    def _set_detector(self, detector: Detector, model_path: Optional[str]) -> None:
        if self.config:
            detector = detector.modify(**self.config)
        self.detector = detector
        self.model_path = model_path
        self.is_loaded = True
        o = detector.options
        self.model_info = {
            'backend': 'acf',
            'model_path': model_path,
            'name': o.name,
            'num_trees': detector.classifier.n_trees,
            'tree_depth': detector.classifier.max_depth,
            'model_ds': tuple(o.model_ds),
            'model_ds_pad': tuple(o.model_ds_pad),
            'shrink': o.pyramid.chns.shrink,
            'nms': o.nms.type.value,
        }

    def predict(self, image: np.ndarray, **kwargs) -> List[Detection]:
        """Run detection; ``min_score`` drops weaker detections."""
        if not self.is_loaded or self.detector is None:
            raise ModelError("No model loaded")
        detections = self.detector.detect(image)
        min_score = kwargs.get('min_score')
        if min_score is not None:
            detections = [d for d in detections if d.score >= min_score]
        return detections

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the loaded detector."""
        if not self.is_loaded:
            return {'status': 'not_loaded'}
        return self.model_info.copy()

    def get_supported_formats(self) -> List[str]:
        return list(SUPPORTED_MODEL_FORMATS)

    def validate_model(self, model_path: str) -> bool:
        """Validate if a model file can be loaded as a detector."""
        _, ext = os.path.splitext(model_path.lower())
        if ext not in self.get_supported_formats():
            return False
        if not os.path.isfile(model_path) or not os.access(model_path, os.R_OK):
            return False
        try:
            Detector.from_file(model_path)
            return True
        except ApplicationError:
            return False

    def unload_model(self) -> None:
        """Unload the current detector."""
        self.detector = None
        super().unload_model()
        self.model_path = None
