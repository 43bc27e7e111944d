"""Backend implementations for different model types."""

from .base_backend import BaseBackend
from .acf_backend import AcfBackend

__all__ = ["BaseBackend", "AcfBackend"]
