"""Response schemas shared across domains"""

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel


class AppointmentResponse(BaseModel):
    """Appointment as returned by scheduling, payment and completion endpoints"""

    id: int
    userId: int
    homeId: int
    date: date
    price: float
    originalPrice: Optional[float] = None
    timeWindow: Optional[str] = None
    completed: bool
    paid: bool
    manuallyPaid: bool
    paymentStatus: str
    paymentCaptureFailed: bool
    completionStatus: str
    employeesAssigned: list[int]
    recurringScheduleId: Optional[int] = None
    wasCancelled: bool


def appointment_to_response(appointment: Any) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        userId=appointment.user_id,
        homeId=appointment.home_id,
        date=appointment.date,
        price=appointment.price,
        originalPrice=appointment.original_price,
        timeWindow=appointment.time_window,
        completed=appointment.completed,
        paid=appointment.paid,
        manuallyPaid=appointment.manually_paid,
        paymentStatus=appointment.payment_status,
        paymentCaptureFailed=appointment.payment_capture_failed,
        completionStatus=appointment.completion_status,
        employeesAssigned=appointment.assigned_cleaner_ids,
        recurringScheduleId=appointment.recurring_schedule_id,
        wasCancelled=appointment.was_cancelled,
    )
