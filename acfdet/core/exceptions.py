"""Custom exceptions for the detector."""
from typing import Optional


class ApplicationError(Exception):
    """Base detector error."""
    pass


class DetectionError(ApplicationError):
    """Base exception for detection-related errors."""
    pass


class ValidationError(DetectionError):
    """Input validation errors.

    Raised before any processing happens; ``stage`` names the pipeline stage
    that rejected the input and ``parameter`` the offending input or option.
    """

    def __init__(self, message: str, stage: Optional[str] = None, parameter: Optional[str] = None):
        self.stage = stage
        self.parameter = parameter
        prefix = ""
        if stage:
            prefix = f"[{stage}] "
        if parameter:
            prefix += f"{parameter}: "
        super().__init__(prefix + message)


class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass


class MergeConflictError(ConfigError):
    """Both sides of an error-if-conflict merge set the same field differently."""

    def __init__(self, path: str, base_value, override_value):
        self.path = path
        self.base_value = base_value
        self.override_value = override_value
        super().__init__(
            f"Conflicting values for '{path}': {base_value!r} != {override_value!r}"
        )


class ModelError(ApplicationError):
    """Classifier construction / loading errors."""
    pass
