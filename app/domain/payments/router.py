"""Payment router - FastAPI endpoints for appointment payments, cancellation and completion"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_cleaner, require_homeowner
from ...config import Settings, get_settings
from ...database import get_db
from ...errors import NotAuthorized
from ...models import User
from ...services.payment_gateway import PaymentGateway, get_payment_gateway
from .completion_service import CompletionService
from .schemas import (
    AppointmentActionRequest,
    CompleteJobRequest,
    CompletionSubmitRequest,
    DeclineRequest,
    ReviewRequest,
)
from .service import PaymentLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])
appointments_router = APIRouter(prefix="/appointments", tags=["Appointments"])
completion_router = APIRouter(prefix="/completion", tags=["Completion"])


def get_payment_lifecycle(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentLifecycle:
    """Dependency injection for PaymentLifecycle"""
    return PaymentLifecycle(db, settings, gateway)


def get_completion_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CompletionService:
    """Dependency injection for CompletionService"""
    return CompletionService(db, settings, gateway)


# ============================================================================
# PAYMENT STATE TRANSITIONS
# ============================================================================

# Handlers that reach the gateway are sync so they run in the threadpool


@router.post("/authorize")
def authorize_payment(
    data: AppointmentActionRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Place a hold on the homeowner's card for the appointment"""
    lifecycle.ensure_participant(data.appointmentId, current_user)
    return lifecycle.authorize(data.appointmentId)


@router.post("/capture")
def capture_payment(
    data: AppointmentActionRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Capture the held payment for an appointment"""
    lifecycle.ensure_participant(data.appointmentId, current_user)
    return lifecycle.capture(data.appointmentId)


@router.post("/retry-payment")
def retry_payment(
    data: AppointmentActionRequest,
    current_user: User = Depends(require_homeowner),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Retry a failed capture on the existing hold"""
    return lifecycle.retry_payment(data.appointmentId, current_user.id)


@router.post("/pre-pay")
def pre_pay(
    data: AppointmentActionRequest,
    current_user: User = Depends(require_homeowner),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Pay for an upcoming appointment now"""
    return lifecycle.pre_pay(data.appointmentId, current_user.id)


@router.post("/cancel-or-refund")
def cancel_or_refund(
    data: AppointmentActionRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Release an uncaptured hold or refund a captured payment"""
    lifecycle.ensure_participant(data.appointmentId, current_user)
    return lifecycle.cancel_or_refund(data.appointmentId)


@router.post("/refund")
def refund(
    data: AppointmentActionRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Alias of /cancel-or-refund"""
    lifecycle.ensure_participant(data.appointmentId, current_user)
    return lifecycle.cancel_or_refund(data.appointmentId)


@router.post("/complete-job")
def complete_job(
    data: CompleteJobRequest,
    current_user: User = Depends(require_cleaner),
    completion: CompletionService = Depends(get_completion_service),
):
    """Cleaner marks the job done; the homeowner still has to approve it"""
    if data.cleanerId != current_user.id:
        raise NotAuthorized("Cleaners can only complete their own jobs")
    return completion.submit_completion(data.appointmentId, current_user.id, data.checklist, data.notes)


# ============================================================================
# HOMEOWNER CANCELLATION
# ============================================================================


@appointments_router.get("/{appointment_id}/cancellation-info")
async def cancellation_info(
    appointment_id: int,
    current_user: User = Depends(require_homeowner),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Whether cancelling now would incur the cancellation fee"""
    return lifecycle.cancellation_info(appointment_id, current_user.id)


@appointments_router.post("/{appointment_id}/cancel")
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(require_homeowner),
    lifecycle: PaymentLifecycle = Depends(get_payment_lifecycle),
):
    """Cancel an appointment, releasing or refunding its payment"""
    return lifecycle.cancel_appointment(appointment_id, current_user.id)


# ============================================================================
# COMPLETION / APPROVAL
# ============================================================================


@completion_router.post("/submit/{appointment_id}")
async def submit_completion(
    appointment_id: int,
    data: Optional[CompletionSubmitRequest] = None,
    current_user: User = Depends(require_cleaner),
    completion: CompletionService = Depends(get_completion_service),
):
    """Cleaner submits the finished job for homeowner approval"""
    data = data or CompletionSubmitRequest()
    return completion.submit_completion(appointment_id, current_user.id, data.checklist, data.notes)


@completion_router.post("/approve/{appointment_id}")
def approve_completion(
    appointment_id: int,
    current_user: User = Depends(require_homeowner),
    completion: CompletionService = Depends(get_completion_service),
):
    """Homeowner approves the job; payouts are released"""
    return completion.approve_completion(appointment_id, current_user.id)


@completion_router.post("/request-review/{appointment_id}")
def request_review(
    appointment_id: int,
    data: Optional[ReviewRequest] = None,
    current_user: User = Depends(require_homeowner),
    completion: CompletionService = Depends(get_completion_service),
):
    """Approve with concerns flagged for follow-up"""
    return completion.request_review(appointment_id, current_user.id, data.concerns if data else None)


@completion_router.post("/decline/{appointment_id}")
async def decline_completion(
    appointment_id: int,
    data: Optional[DeclineRequest] = None,
    current_user: User = Depends(require_homeowner),
    completion: CompletionService = Depends(get_completion_service),
):
    """Send a submitted job back to the cleaner"""
    return completion.decline_completion(appointment_id, current_user.id, data.reason if data else None)


@completion_router.get("/status/{appointment_id}")
async def completion_status(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    completion: CompletionService = Depends(get_completion_service),
):
    """Completion state for the homeowner or an assigned cleaner"""
    return completion.completion_status(appointment_id, current_user.id)
