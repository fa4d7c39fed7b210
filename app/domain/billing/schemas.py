"""Billing domain schemas - Pydantic models for validation"""

from pydantic import BaseModel


class BillResponse(BaseModel):
    userId: int
    appointmentDue: float
    cancellationFee: float
    totalDue: float
    appointmentPaid: float
    cancellationPaid: float
    totalPaid: float
