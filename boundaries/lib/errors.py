"""Structured exception hierarchy for boundary loading.

Backend failures are mapped into a fixed taxonomy (``ErrorType``) at the
adapter boundary. Retry decisions are made from that tag, never from the
text of an error message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

__all__ = [
    "ErrorType",
    "BoundaryError",
    "BackendError",
    "NoBackendError",
    "SchemaMissingError",
    "TableMissingError",
    "FunctionMissingError",
    "PermissionDeniedError",
    "InvalidInputError",
    "BackendNetworkError",
    "UnknownBackendError",
    "ConfigurationError",
    "DebounceSignal",
    "RequestSuperseded",
    "RequestCancelled",
    "Classification",
    "classify_error",
    "error_for_type",
    "to_backend_error",
    "register_error_mapper",
    "list_error_mappers",
]


class ErrorType(Enum):
    """Backend failure taxonomy."""

    NO_BACKEND = "no_backend"
    SCHEMA_MISSING = "schema_missing"
    TABLE_MISSING = "table_missing"
    FUNCTION_MISSING = "function_missing"
    PERMISSION_DENIED = "permission_denied"
    INVALID_INPUT = "invalid_input"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"

    @property
    def recoverable(self) -> bool:
        return self in (ErrorType.NETWORK_ERROR, ErrorType.UNKNOWN)


class BoundaryError(Exception):
    """Base exception for boundary loading errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.operation = operation
        self.details = details or {}
        self.suggestion = suggestion

        parts = [f"[{operation}] {message}" if operation else message]

        if self.details:
            detail_lines = [f"  {k}: {v}" for k, v in self.details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "operation": self.operation,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class BackendError(BoundaryError):
    """Error reported by (or about) the spatial backend.

    Subclasses pin ``error_type``; ``recoverable`` follows from it.
    """

    error_type: ErrorType = ErrorType.UNKNOWN
    default_suggestion: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.cause = cause

        details = kwargs.pop("details", None) or {}
        details.setdefault("error_type", self.error_type.value)
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None) or self.default_suggestion
        super().__init__(message, details=details, suggestion=suggestion, **kwargs)

    @property
    def recoverable(self) -> bool:
        return self.error_type.recoverable

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["type"] = self.error_type.value
        data["recoverable"] = self.recoverable
        return data


class NoBackendError(BackendError):
    """Spatial backend is not configured or unreachable for the session."""

    error_type = ErrorType.NO_BACKEND
    default_suggestion = "Set BOUNDARY_BACKEND_URL and BOUNDARY_BACKEND_KEY."


class SchemaMissingError(BackendError):
    error_type = ErrorType.SCHEMA_MISSING
    default_suggestion = "Run the GIS schema migrations and expose the schema to the API."


class TableMissingError(BackendError):
    error_type = ErrorType.TABLE_MISSING
    default_suggestion = "Check that all GIS migrations have been applied."


class FunctionMissingError(BackendError):
    error_type = ErrorType.FUNCTION_MISSING
    default_suggestion = "Create the boundary RPC functions in the GIS schema."


class PermissionDeniedError(BackendError):
    error_type = ErrorType.PERMISSION_DENIED
    default_suggestion = "Check that row-level security policies allow public read access."


class InvalidInputError(BackendError):
    """Coordinates, bounding box, zoom or tile address out of range.

    Raised locally before a request is sent, and mapped from backend
    validation failures.
    """

    error_type = ErrorType.INVALID_INPUT

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", None) or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class BackendNetworkError(BackendError):
    error_type = ErrorType.NETWORK_ERROR
    default_suggestion = "Check network connectivity to the spatial backend."


class UnknownBackendError(BackendError):
    error_type = ErrorType.UNKNOWN


class ConfigurationError(BoundaryError):
    """Invalid or incomplete configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", None) or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class DebounceSignal(Exception):
    """A debounced call that will never execute.

    Not an error: callers catch it and move on.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"{self.reason}: {key}")

    reason = "Debounced"


class RequestSuperseded(DebounceSignal):
    """A newer call with the same debounce key replaced this one."""

    reason = "Superseded"


class RequestCancelled(DebounceSignal):
    """The coordinator was torn down (or evicted the slot) before the call ran."""

    reason = "Cancelled"


_ERROR_CLASSES: Dict[ErrorType, type] = {
    ErrorType.NO_BACKEND: NoBackendError,
    ErrorType.SCHEMA_MISSING: SchemaMissingError,
    ErrorType.TABLE_MISSING: TableMissingError,
    ErrorType.FUNCTION_MISSING: FunctionMissingError,
    ErrorType.PERMISSION_DENIED: PermissionDeniedError,
    ErrorType.INVALID_INPUT: InvalidInputError,
    ErrorType.NETWORK_ERROR: BackendNetworkError,
    ErrorType.UNKNOWN: UnknownBackendError,
}


def error_for_type(
    error_type: ErrorType, message: str, **kwargs: Any
) -> BackendError:
    """Instantiate the BackendError subclass for ``error_type``."""
    return _ERROR_CLASSES[error_type](message, **kwargs)


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying a failure for retry purposes."""

    error_type: ErrorType
    recoverable: bool


def _is_network_failure(exc: BaseException) -> bool:
    return isinstance(exc, (TimeoutError, ConnectionError, OSError, httpx.TransportError))


def classify_error(exc: BaseException) -> Classification:
    """Default retry classifier.

    Only NETWORK_ERROR and UNKNOWN are recoverable. Cancellation and
    debounce signals never are.
    """
    if isinstance(exc, BackendError):
        return Classification(exc.error_type, exc.recoverable)
    if isinstance(exc, DebounceSignal) or not isinstance(exc, Exception):
        return Classification(ErrorType.UNKNOWN, False)
    if _is_network_failure(exc):
        return Classification(ErrorType.NETWORK_ERROR, True)
    return Classification(ErrorType.UNKNOWN, True)


# =============================================================================
# Unified Error Mapper
# =============================================================================

ErrorMapper = Callable[[Exception, str], BackendError]

_ERROR_MAPPERS: Dict[str, ErrorMapper] = {}


def register_error_mapper(backend_type: str) -> Callable[[ErrorMapper], ErrorMapper]:
    """Decorator to register a backend-specific error mapper.

    Usage:
        @register_error_mapper("my_backend")
        def my_mapper(exc, operation):
            return SchemaMissingError(...)
    """
    def decorator(mapper: ErrorMapper) -> ErrorMapper:
        _ERROR_MAPPERS[backend_type.lower()] = mapper
        return mapper
    return decorator


def _default_error_mapper(exc: Exception, operation: str) -> BackendError:
    classification = classify_error(exc)
    error_type = type(exc).__name__
    return error_for_type(
        classification.error_type,
        f"Backend operation failed: {error_type}: {exc}",
        operation=operation,
        cause=exc,
    )


def to_backend_error(
    exc: Exception,
    backend_type: str = "default",
    operation: str = "backend_request",
) -> BackendError:
    """Convert any exception into the backend taxonomy.

    Domain errors pass through unchanged; everything else is routed to the
    mapper registered for ``backend_type``.
    """
    if isinstance(exc, BackendError):
        return exc

    mapper = _ERROR_MAPPERS.get(backend_type.lower(), _default_error_mapper)
    return mapper(exc, operation)


def list_error_mappers() -> List[str]:
    """Return all registered error mapper backend types."""
    return sorted(_ERROR_MAPPERS.keys())
