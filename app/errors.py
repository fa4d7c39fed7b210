"""
Domain errors shared by every service.

Services raise these instead of HTTPException so they can run outside a request
(worker cron jobs, the generation runner). main.py maps them to JSON responses.
"""

from typing import Any, Optional


class DomainError(Exception):
    """Base class for errors raised by domain services"""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationFailed(DomainError):
    status_code = 400
    code = "validation_failed"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class NotAuthorized(DomainError):
    status_code = 403
    code = "not_authorized"


class StateConflict(DomainError):
    status_code = 409
    code = "state_conflict"


class PhotosRequired(DomainError):
    """Completion submitted without the required before/after photos"""

    status_code = 400
    code = "photos_required"

    def __init__(self, missing: str, message: Optional[str] = None):
        super().__init__(
            message or f"Please upload {missing} photos before completing the job",
            missingPhotos=missing,
        )
        self.missing = missing


class ReconciliationRequired(DomainError):
    """Gateway moved money but the local update did not persist"""

    status_code = 500
    code = "reconciliation_required"
