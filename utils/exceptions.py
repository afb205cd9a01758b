"""
Custom exception hierarchy for the PVE LXC K3s template toolchain.
"""
from typing import Iterable, Optional


class TemplateBuildError(Exception):
    """Base exception for all toolchain errors."""
    pass

class ConfigurationError(TemplateBuildError):
    """Configuration loading or validation failed."""
    pass

class ConfigNotFoundError(ConfigurationError):
    """Configuration file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Configuration file not found: {path}")

class ConfigParseError(ConfigurationError):
    """Configuration file is not valid YAML."""
    pass

class ConfigSchemaViolation(ConfigurationError):
    """A field is present but has the wrong format, type or value."""

    def __init__(self, field: str, message: str, expected: Optional[str] = None):
        self.field = field
        self.expected = expected
        super().__init__(message)

class MissingRequiredKeysError(ConfigurationError):
    """One or more required configuration keys are absent."""

    def __init__(self, missing_keys: Iterable[str]):
        self.missing_keys = list(missing_keys)
        super().__init__(
            "Missing required configuration keys: " + ", ".join(self.missing_keys)
        )

class OperationError(TemplateBuildError):
    """An external tool or build step failed; carries its error category."""

    def __init__(self, message: str, category: Optional[str] = None):
        self.category = category
        super().__init__(message)

class LogFileNotFoundError(TemplateBuildError):
    """Requested log file does not exist in the log directory."""
    pass
