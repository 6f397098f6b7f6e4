"""
Custom exception classes for the Output Engine.

This module defines structured exception types for schema loading,
schema definition errors, batch configuration, and backend failures.
Expected generation failures are returned as GenerationError values instead.
"""

from typing import Any, Dict, Optional


class OutputEngineError(Exception):
    """Base exception for all Output Engine errors."""
    pass


class ManifestLoadError(OutputEngineError):
    """Error loading a schema file."""

    def __init__(self, file_name: str, message: str):
        self.file_name = file_name
        self.message = message
        super().__init__(f"Error loading {file_name}: {message}")


class SchemaDefinitionError(OutputEngineError):
    """Malformed schema or field definition."""

    def __init__(self, field_path: str, message: str):
        self.field_path = field_path
        self.message = message
        super().__init__(f"Schema definition error at {field_path}: {message}")


class ConfigurationError(OutputEngineError):
    """Invalid batch-level options."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BackendError(OutputEngineError):
    """A backend call failed.

    ``reason`` is a short machine-readable code (``rate_limited``,
    ``http_error``, ``api_error``...) that callers can branch on.
    """

    def __init__(self, reason: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        self.message = message or reason
        self.details = details or {}
        super().__init__(f"Backend error ({reason}): {self.message}")


class BackendConfigError(BackendError):
    """A backend's own configuration is invalid (missing key, bad temperature)."""
    pass
