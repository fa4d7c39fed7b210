"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


class ScheduleCreate(BaseModel):
    """Schema for creating a recurring schedule"""

    cleanerClientId: Optional[int] = None
    frequency: Optional[str] = None
    dayOfWeek: Optional[int] = None
    timeWindow: Optional[str] = None
    price: Optional[float] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None


class ScheduleUpdate(BaseModel):
    """Schema for editing a recurring schedule (endDate may be cleared with null)"""

    frequency: Optional[str] = None
    dayOfWeek: Optional[int] = None
    timeWindow: Optional[str] = None
    price: Optional[float] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None


class PauseRequest(BaseModel):
    until: Optional[date] = None
    reason: Optional[str] = None


class GenerateRequest(BaseModel):
    weeksAhead: Optional[int] = None


class ScheduleResponse(BaseModel):
    """Schema for schedule response"""

    id: int
    cleanerId: int
    cleanerClientId: int
    clientId: int
    homeId: int
    frequency: str
    dayOfWeek: int
    timeWindow: Optional[str]
    price: float
    startDate: date
    endDate: Optional[date]
    isActive: bool
    isPaused: bool
    pausedUntil: Optional[date]
    pauseReason: Optional[str]
    lastGeneratedDate: Optional[date]
    nextScheduledDate: Optional[date]
    createdAt: Optional[datetime] = None


class GenerationResult(BaseModel):
    """Summary returned by the batch generation run"""

    schedulesProcessed: int
    appointmentsCreated: int
    skipped: int
    errors: int
    details: list[dict]
