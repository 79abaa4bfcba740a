"""
Error taxonomy for the lending ledger.

Every failure an operation can report is a LendingError carrying one
ErrorKind, so callers handle all of them the same way.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    """Kinds of failure surfaced to callers"""
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    VALIDATION = "validation_error"
    INTERNAL = "internal"


class LendingError(Exception):
    """Base exception for all lending ledger errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.kind.value, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(LendingError):
    """Raised when a loan, installment or customer does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type.capitalize()} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": str(entity_id)}
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidStateError(LendingError):
    """Raised when a loan is in the wrong lifecycle state for the operation."""

    kind = ErrorKind.INVALID_STATE


class RequestValidationError(LendingError):
    """Raised when a request is missing or has malformed fields."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or []


class InternalError(LendingError):
    """Raised when an operation fails for an unexpected reason."""

    kind = ErrorKind.INTERNAL
