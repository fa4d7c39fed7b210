"""Recurring schedule router - FastAPI endpoints for recurring schedules"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_cleaner, require_homeowner, require_internal_or_owner
from ...config import Settings, get_settings
from ...database import SessionLocal, get_db
from ...models import RecurringSchedule, User
from ...schemas import appointment_to_response
from ...services.payment_gateway import PaymentGateway, get_payment_gateway
from .generation_job import run_generation_job
from .schemas import (
    GenerateRequest,
    GenerationResult,
    PauseRequest,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
)
from .service import ScheduleEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recurring-schedules", tags=["Recurring Schedules"])


def get_schedule_engine(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> ScheduleEngine:
    """Dependency injection for ScheduleEngine"""
    return ScheduleEngine(db, settings, gateway=gateway)


def get_session_factory():
    """Session factory used by the batch generation endpoint"""
    return SessionLocal


def to_schedule_response(schedule: RecurringSchedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.id,
        cleanerId=schedule.cleaner_id,
        cleanerClientId=schedule.cleaner_client_id,
        clientId=schedule.client_id,
        homeId=schedule.home_id,
        frequency=schedule.frequency,
        dayOfWeek=schedule.day_of_week,
        timeWindow=schedule.time_window,
        price=schedule.price,
        startDate=schedule.start_date,
        endDate=schedule.end_date,
        isActive=schedule.is_active,
        isPaused=schedule.is_paused,
        pausedUntil=schedule.paused_until,
        pauseReason=schedule.pause_reason,
        lastGeneratedDate=schedule.last_generated_date,
        nextScheduledDate=schedule.next_scheduled_date,
        createdAt=schedule.created_at,
    )


def _with_schedule(result: dict) -> dict:
    response = {k: v for k, v in result.items() if k not in ("schedule", "appointments")}
    response["schedule"] = to_schedule_response(result["schedule"])
    return response


# ============================================================================
# CLEANER ENDPOINTS
# ============================================================================


@router.post("")
async def create_schedule(
    data: ScheduleCreate,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Create a recurring schedule and generate its first appointments"""
    return _with_schedule(engine.create_schedule(current_user, data))


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules(
    cleanerClientId: Optional[int] = Query(None),
    activeOnly: bool = Query(False),
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """List the cleaner's recurring schedules"""
    schedules = engine.list_schedules(current_user, cleanerClientId, activeOnly)
    return [to_schedule_response(s) for s in schedules]


# ============================================================================
# HOMEOWNER ENDPOINTS
# ============================================================================


@router.get("/my-schedules", response_model=list[ScheduleResponse])
async def my_schedules(
    current_user: User = Depends(require_homeowner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Active recurring schedules booked for the current homeowner"""
    return [to_schedule_response(s) for s in engine.list_client_schedules(current_user)]


# ============================================================================
# BATCH GENERATION
# ============================================================================


@router.post("/generate-all", response_model=GenerationResult)
def generate_all(
    _caller: Optional[User] = Depends(require_internal_or_owner),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    session_factory=Depends(get_session_factory),
):
    """Run the generation job for every active schedule"""
    return run_generation_job(session_factory, settings, gateway=gateway)


# ============================================================================
# SINGLE SCHEDULE
# ============================================================================


@router.get("/{schedule_id}")
async def get_schedule(
    schedule_id: int,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Get a schedule with its upcoming appointments"""
    result = engine.get_schedule(schedule_id, current_user)
    return {
        "schedule": to_schedule_response(result["schedule"]),
        "upcomingAppointments": [appointment_to_response(a) for a in result["upcomingAppointments"]],
    }


@router.patch("/{schedule_id}")
def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Edit a schedule; unpaid future appointments are regenerated"""
    return _with_schedule(engine.update_schedule(schedule_id, current_user, data))


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: int,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Deactivate a schedule and remove its unpaid future appointments"""
    return engine.deactivate_schedule(schedule_id, current_user)


@router.post("/{schedule_id}/pause")
def pause_schedule(
    schedule_id: int,
    data: Optional[PauseRequest] = None,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Pause a schedule, optionally until a date"""
    data = data or PauseRequest()
    return _with_schedule(engine.pause_schedule(schedule_id, current_user, data.until, data.reason))


@router.post("/{schedule_id}/resume")
async def resume_schedule(
    schedule_id: int,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Resume a paused schedule and generate its appointments"""
    return _with_schedule(engine.resume_schedule(schedule_id, current_user))


@router.post("/{schedule_id}/generate")
async def generate_for_schedule(
    schedule_id: int,
    data: Optional[GenerateRequest] = None,
    current_user: User = Depends(require_cleaner),
    engine: ScheduleEngine = Depends(get_schedule_engine),
):
    """Generate appointments for one schedule now"""
    weeks_ahead = data.weeksAhead if data else None
    result = engine.generate_for_schedule(schedule_id, current_user, weeks_ahead)
    response = _with_schedule(result)
    response["appointments"] = [appointment_to_response(a) for a in result["appointments"]]
    return response
