"""
Exception hierarchy for the trial funnel core.

Validation problems are raised before any network call is made; persistence
problems come from the repository and are turned into rollbacks and user
notices by the coordinator and the service layer.

Usage:
    from trial_funnel.errors import PersistenceError, ValidationError

    raise ValidationError("scheduled_date is required", details={"status": "TRIAL_ASSIGNED"})
    raise PersistenceError("PATCH /api/trial-requests/7/status failed", status_code=500)
"""


class FunnelError(Exception):
    """Base class for every error raised by the package."""


class ValidationError(FunnelError, ValueError):
    """Raised when a transition or archival request breaks a business rule.

    Subclasses ``ValueError`` so callers that only guard against malformed
    input keep working.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceError(FunnelError):
    """Raised when the persistence collaborator fails to read or store a request.

    Args:
        message: What went wrong.
        status_code: HTTP status reported by the server, if any.
        request_id: The trial request involved, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        request_id: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(message)


class NotFoundError(PersistenceError):
    """Raised when a trial request id is unknown to the persistence layer."""

    def __init__(self, request_id: int) -> None:
        super().__init__(f"trial request id={request_id} not found", status_code=404, request_id=request_id)
