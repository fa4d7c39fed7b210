"""Payment domain schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel


class AppointmentActionRequest(BaseModel):
    """Body shared by the payment endpoints that act on one appointment"""

    appointmentId: int


class CompleteJobRequest(BaseModel):
    appointmentId: int
    cleanerId: int
    checklist: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


class CompletionSubmitRequest(BaseModel):
    checklist: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


class ReviewRequest(BaseModel):
    concerns: Optional[str] = None


class DeclineRequest(BaseModel):
    reason: Optional[str] = None
