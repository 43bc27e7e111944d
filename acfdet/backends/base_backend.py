"""Base backend interface for detector implementations."""
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
import numpy as np
from ..core.entities import Detection

class BaseBackend(ABC):
    """Abstract base class for detector backends."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.is_loaded = False
        self.model_info = {}

    @abstractmethod
    def load_model(self, model_path: str) -> bool:
        """Load a detector from a model file."""
        pass

    @abstractmethod
    def predict(self, image: np.ndarray, **kwargs) -> List[Detection]:
        """Run detection on an image."""
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the loaded detector."""
        pass

    def is_model_loaded(self) -> bool:
        """Check if a detector is currently loaded."""
        return self.is_loaded

    def unload_model(self) -> None:
        """Drop the current detector."""
        self.is_loaded = False
        self.model_info = {}

    @abstractmethod
    def get_supported_formats(self) -> List[str]:
        """Get list of supported model formats."""
        pass

    @abstractmethod
    def validate_model(self, model_path: str) -> bool:
        """Validate if a model file is compatible with this backend."""
        pass
