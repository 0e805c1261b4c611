from __future__ import annotations


class PersonalizationError(RuntimeError):
    """Base class for every failure raised by the personalization flow."""


class InvalidFormat(PersonalizationError, ValueError):
    """Raised when a selection does not declare an image media type."""


class UnknownParameter(PersonalizationError, KeyError):
    """Raised when a generation parameter name is not part of the schema."""

    def __str__(self) -> str:
        return RuntimeError.__str__(self)


class InvalidParameterType(PersonalizationError, TypeError):
    """Raised when a parameter value does not match the declared field type."""


class GenerationFailed(PersonalizationError):
    """Common base for remote and transport failures."""


class RemoteGenerationFailed(GenerationFailed):
    """Raised when the endpoint reports failure or omits the result reference."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class TransportFailure(GenerationFailed):
    """Raised on network errors, timeouts, non-2xx or non-JSON responses."""


class ExportFailed(PersonalizationError):
    """Raised when the result cannot be retrieved or materialized."""


class ExportInProgress(PersonalizationError):
    """Raised when an export is requested while another one is outstanding."""


class SettingsError(PersonalizationError, ValueError):
    """Raised when a settings file cannot be interpreted."""


__all__ = [
    "PersonalizationError",
    "InvalidFormat",
    "UnknownParameter",
    "InvalidParameterType",
    "GenerationFailed",
    "RemoteGenerationFailed",
    "TransportFailure",
    "ExportFailed",
    "ExportInProgress",
    "SettingsError",
]
