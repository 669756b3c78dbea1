"""
Domain exceptions for the Leaderboard service.

Every error raised across the service boundary derives from
``LeaderboardDomainException`` and carries a stable ``error_code``, a
``severity`` for log routing, an ``is_retryable`` hint, and structured
``details``. ``to_dict()`` is what a transport layer renders.

Which layer raises what
-----------------------
- PlayerPayload / InputValidator   -> ValidationError
- PlayerStore                      -> ConflictError, NotFoundError, StoreUnavailableError
- RankIndex implementations        -> RankIndexUnavailableError (absorbed by
                                      RankingService except during rebuild)
- AdminGateway                     -> UnauthorizedError, ForbiddenError
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"  # Caller mistakes: validation, conflicts, missing records
    WARNING = "warning"  # Handled degradation (rank index down)
    ERROR = "error"
    CRITICAL = "critical"


class LeaderboardDomainException(Exception):
    """
    Base class for domain errors.

    Subclasses set ``DEFAULT_SEVERITY`` / ``DEFAULT_RETRYABLE`` and usually a
    fixed ``error_code``.
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        self.error_code = error_code or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"


# ============================================================================
# Caller errors
# ============================================================================


class ValidationError(LeaderboardDomainException):
    """A field failed validation; nothing was written."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "reason": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class ConflictError(LeaderboardDomainException):
    """A unique field (the username) is already taken."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, field: str, value: Any) -> None:
        self.resource_type = resource_type
        self.field = field
        self.value = value
        super().__init__(
            f"{resource_type} with {field}={value!r} already exists",
            details={"resource_type": resource_type, "field": field, "value": value},
            error_code=f"{resource_type.upper()}_CONFLICT",
        )


class NotFoundError(LeaderboardDomainException):
    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = f": {identifier}" if identifier is not None else ""
        super().__init__(
            f"{resource_type} not found{suffix}",
            details={
                "resource_type": resource_type,
                "identifier": None if identifier is None else str(identifier),
            },
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class UnauthorizedError(LeaderboardDomainException):
    """No authenticated actor on the request."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message, error_code="UNAUTHORIZED")


class ForbiddenError(LeaderboardDomainException):
    """The actor is authenticated but lacks ``required_role``."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, required_role: str) -> None:
        self.action = action
        self.required_role = required_role
        super().__init__(
            f"Role '{required_role}' required for {action}",
            details={"action": action, "required_role": required_role},
            error_code="FORBIDDEN",
        )


# ============================================================================
# Infrastructure errors
# ============================================================================


class _BackendUnavailableError(LeaderboardDomainException):
    BACKEND = "backend"
    CODE = "UNAVAILABLE"
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"{self.BACKEND} unavailable during {operation}: {reason}",
            details={"operation": operation, "reason": reason},
            error_code=self.CODE,
        )


class StoreUnavailableError(_BackendUnavailableError):
    """The durable player store failed or timed out. Fatal to the request."""

    BACKEND = "Player store"
    CODE = "STORE_UNAVAILABLE"
    DEFAULT_SEVERITY = ErrorSeverity.ERROR


class RankIndexUnavailableError(_BackendUnavailableError):
    """
    The rank index could not serve an operation (connection error, timeout
    or open circuit). Distinct from an empty result.
    """

    BACKEND = "Rank index"
    CODE = "RANK_INDEX_UNAVAILABLE"
    DEFAULT_SEVERITY = ErrorSeverity.WARNING
