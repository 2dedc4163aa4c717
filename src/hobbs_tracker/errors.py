"""
Error kinds for Hobbs Tracker.

PURPOSE: One exception type per failure kind so every layer reports errors the same way.
AI CONTEXT: Raised by storage, policy, state machine and ledger; caught by the service layer.

ERROR KINDS:
- not_found: Entity absent or not visible to the acting identity
- ownership_mismatch: Cross-owner plane/device linkage attempted
- unauthenticated: No active identity
- access_denied: Admin-only operation attempted by a non-admin
- gateway_failure: Underlying store error (I/O, corrupt data)
- validation_failure: Missing or malformed input, illegal transition

HTTP MAPPING:
Each kind carries the status code the web layer answers with, so routes never
need their own lookup table.

USAGE:
    try:
        device = machine.assign_plane(actor, device, plane)
    except TrackerError as e:
        return ServiceResult(success=False, message=str(e), error_kind=e.kind)
"""

from __future__ import annotations

from typing import Any, ClassVar

__all__ = [
    "TrackerError",
    "NotFoundError",
    "OwnershipMismatchError",
    "UnauthenticatedError",
    "AccessDeniedError",
    "GatewayFailureError",
    "ValidationFailureError",
    "http_status_for",
]


class TrackerError(Exception):
    """
    Base class for all Hobbs Tracker errors.

    Subclasses only override the two class attributes. The message is kept
    verbatim so gateway failures surface the underlying cause unchanged.
    """

    kind: ClassVar[str] = "error"
    http_status: ClassVar[int] = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error for API responses.

        Returns:
            Dict with 'kind' and 'message' keys.

        Example:
            >>> NotFoundError("Plane not found").to_dict()
            {'kind': 'not_found', 'message': 'Plane not found'}
        """
        return {"kind": self.kind, "message": self.message}


class NotFoundError(TrackerError):
    """Entity is absent, or exists but belongs to someone else."""

    kind = "not_found"
    http_status = 404


class OwnershipMismatchError(TrackerError):
    """Plane and device belong to different owners."""

    kind = "ownership_mismatch"
    http_status = 409


class UnauthenticatedError(TrackerError):
    """No identity is attached to the request."""

    kind = "unauthenticated"
    http_status = 401


class AccessDeniedError(TrackerError):
    """Authenticated, but the operation requires administrator rights."""

    kind = "access_denied"
    http_status = 403


class GatewayFailureError(TrackerError):
    """Persistence gateway could not complete a read or write."""

    kind = "gateway_failure"
    http_status = 502


class ValidationFailureError(TrackerError):
    """Input is missing/invalid or the requested transition is illegal."""

    kind = "validation_failure"
    http_status = 422


_ERROR_TYPES: tuple[type[TrackerError], ...] = (
    NotFoundError,
    OwnershipMismatchError,
    UnauthenticatedError,
    AccessDeniedError,
    GatewayFailureError,
    ValidationFailureError,
)


def http_status_for(kind: str | None) -> int:
    """
    HTTP status for an error kind string.

    Used where only the kind survived, e.g. on a failed ServiceResult.
    Unknown kinds map to 500.

    Example:
        >>> http_status_for("ownership_mismatch")
        409
    """
    for error_type in _ERROR_TYPES:
        if error_type.kind == kind:
            return error_type.http_status
    return TrackerError.http_status
