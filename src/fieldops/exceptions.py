"""
FieldOps Exception Hierarchy

Typed failures raised by the workflow engines. Every error carries a
machine-readable code, a severity and structured context, and knows the
HTTP status it surfaces as. Raising any of them inside a unit of work
rolls the enclosing transaction back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FieldOpsError(Exception):
    """
    Base exception class for all FieldOps errors.

    Attributes
    ----------
    message : str
        Human-readable error message, shown to the operator as-is
    error_code : str
        Machine-readable error code for categorization
    severity : ErrorSeverity
        Error severity level
    context : Dict[str, Any]
        Additional error context (entity, id, statuses, ...)
    timestamp : datetime
        When the error occurred
    """

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str = "fieldops_error",
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Structured error data for logging and API responses."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"severity={self.severity.value}"
            f")"
        )


class NotFoundError(FieldOpsError):
    """A referenced record does not exist."""

    http_status = 404

    def __init__(self, entity: str, entity_id: Any = None, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"{entity} not found",
            error_code="not_found",
            severity=ErrorSeverity.LOW,
            context={"entity": entity, "id": str(entity_id) if entity_id is not None else None},
        )
        self.entity = entity
        self.entity_id = entity_id


def _status_name(value: Any) -> str:
    return getattr(value, "value", str(value))


class InvalidStateTransitionError(FieldOpsError):
    """An operation was attempted outside its allowed source state(s)."""

    http_status = 409

    def __init__(
        self,
        entity: str,
        operation: str,
        current: Any,
        allowed: Iterable[Any] = (),
        message: Optional[str] = None,
    ) -> None:
        allowed_names = [_status_name(s) for s in allowed]
        current_name = _status_name(current)
        if message is None:
            if allowed_names:
                message = (
                    f"Cannot {operation} {entity} in status {current_name}; "
                    f"requires {' or '.join(allowed_names)}"
                )
            else:
                message = f"Cannot {operation} {entity} in status {current_name}"
        super().__init__(
            message,
            error_code="invalid_state_transition",
            context={
                "entity": entity,
                "operation": operation,
                "current_status": current_name,
                "allowed_statuses": allowed_names,
            },
        )
        self.current = current
        self.allowed = allowed_names


class PreconditionFailedError(FieldOpsError):
    """A business rule blocks the operation even though the status allows it."""

    http_status = 409

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, error_code="precondition_failed", context=context)


class ValidationError(FieldOpsError):
    """Malformed input caught before it reaches a state machine."""

    http_status = 422

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(
            message,
            error_code="validation_error",
            severity=ErrorSeverity.LOW,
            context={"field": field} if field else None,
        )
        self.field = field


class NumberingCollisionError(FieldOpsError):
    """A scan-generated document number kept colliding after all retries."""

    http_status = 409

    def __init__(self, document_type: str, attempts: int, cause: Optional[Exception] = None) -> None:
        super().__init__(
            f"Could not allocate a unique {document_type} number after {attempts} attempts",
            error_code="numbering_collision",
            severity=ErrorSeverity.HIGH,
            context={"document_type": document_type, "attempts": attempts},
            cause=cause,
        )


__all__ = [
    "ErrorSeverity",
    "FieldOpsError",
    "NotFoundError",
    "InvalidStateTransitionError",
    "PreconditionFailedError",
    "ValidationError",
    "NumberingCollisionError",
]
