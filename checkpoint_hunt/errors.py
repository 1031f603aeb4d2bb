"""
Error taxonomy for checkpoint hunt operations.
"""

from dataclasses import dataclass
from typing import Any, Dict


class HuntError(Exception):
    """Base class for expected, typed failures of a hunt operation."""

    kind = "error"
    status_code = 500

    def __init__(
        self,
        message: str,
    ) -> None:
        super().__init__(message)
        self.message = message

    def to_rejection(self) -> "Rejection":
        """
        Convert the error into a plain result value.

        @return: Rejection carrying the kind, message and HTTP status
        """
        return Rejection(
            kind=self.kind, message=self.message, status_code=self.status_code
        )


class ValidationError(HuntError):
    kind = "validation"
    status_code = 400


class UnauthorizedError(HuntError):
    kind = "unauthorized"
    status_code = 401


class ForbiddenError(HuntError):
    kind = "forbidden"
    status_code = 403


class NotFoundError(HuntError):
    kind = "not_found"
    status_code = 404


class StateConflictError(HuntError):
    kind = "state_conflict"
    status_code = 403


class DuplicateError(HuntError):
    """Raised when the pair already has a correct or pending submission."""

    kind = "duplicate"
    status_code = 409


class ConfigurationError(HuntError):
    """Raised when a checkpoint is missing operator-provided configuration."""

    kind = "configuration"
    status_code = 500


class TransientStoreError(HuntError):
    """Raised when the datastore reports a lock conflict or busy timeout."""

    kind = "transient"
    status_code = 503


@dataclass
class Rejection:
    """A non-fatal failure returned from a service operation."""

    kind: str
    message: str
    status_code: int

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


def require_text(message: str, *values: Any) -> None:
    """
    Reject missing or non-string request fields before they reach the datastore.

    @param message: Error message naming the required fields
    @param values: Field values taken from the request
    @raise ValidationError: If any value is not a non-empty string
    """
    for value in values:
        if not isinstance(value, str) or not value:
            raise ValidationError(message)
