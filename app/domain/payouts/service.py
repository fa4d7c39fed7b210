"""Payout engine - platform fee and cleaner earnings per appointment"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...config import Settings
from ...models import Appointment
from ...models_payout import Payout
from ...shared.money import dollars_to_cents, split_cents
from ..incentives.service import IncentiveEvaluator
from .repository import PayoutRepository

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("pending", "held")


class PayoutEngine:
    """Service layer for payout records. Never commits; callers own the transaction."""

    def __init__(self, db: Session, settings: Settings, incentives: Optional[IncentiveEvaluator] = None):
        self.db = db
        self.settings = settings
        self.incentives = incentives or IncentiveEvaluator(db)
        self.repo = PayoutRepository()

    def create_for_appointment(self, appointment: Appointment) -> list[Payout]:
        """
        One pending payout per assigned cleaner. The price is split evenly in
        cents before the fee is applied; leftover cents go to the first cleaners.
        Cleaners that already have a payout for the appointment are skipped.
        """
        cleaner_ids = appointment.assigned_cleaner_ids
        if not cleaner_ids:
            return []

        existing = {p.cleaner_id for p in self.repo.get_for_appointment(self.db, appointment.id)}
        shares = split_cents(dollars_to_cents(appointment.price), len(cleaner_ids))

        created = []
        for cleaner_id, gross in zip(cleaner_ids, shares):
            if cleaner_id in existing:
                continue
            fee = self.incentives.cleaner_fee(cleaner_id, gross, self.settings.platform_fee_percent)
            payout = self.repo.create_payout(
                self.db,
                appointment_id=appointment.id,
                cleaner_id=cleaner_id,
                gross_amount=gross,
                platform_fee=fee["platformFee"],
                amount=fee["netAmount"],
                pre_incentive_fee=fee["originalPlatformFee"],
                incentive_applied=fee["incentiveApplied"],
                status="pending",
            )
            created.append(payout)
        return created

    def mark_held(self, appointment_id: int, now: Optional[datetime] = None) -> int:
        """Payment captured: pending payouts now wait for job completion"""
        now = now or datetime.utcnow()
        payouts = self.repo.get_for_appointment(self.db, appointment_id, ("pending",))
        for payout in payouts:
            payout.status = "held"
            payout.payment_captured_at = now
        self.db.flush()
        return len(payouts)

    def release(self, appointment_id: int, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        """Job approved: held payouts become completed earnings"""
        now = now or datetime.utcnow()
        results = []
        for payout in self.repo.get_for_appointment(self.db, appointment_id, OPEN_STATUSES):
            if payout.status == "pending":
                # Capture and release can land in the same transaction
                payout.payment_captured_at = payout.payment_captured_at or now
            payout.status = "completed"
            payout.completed_at = now
            results.append(
                {
                    "payoutId": payout.id,
                    "cleanerId": payout.cleaner_id,
                    "grossAmount": payout.gross_amount,
                    "platformFee": payout.platform_fee,
                    "netAmount": payout.amount,
                    "status": payout.status,
                }
            )
        self.db.flush()
        logger.info(f"💸 Released {len(results)} payout(s) for appointment {appointment_id}")
        return results

    def discard_for_appointment(self, appointment_id: int) -> int:
        """Appointment cancelled or removed before completion"""
        deleted = self.repo.delete_for_appointment(self.db, appointment_id, OPEN_STATUSES)
        self.db.flush()
        return deleted

    def earnings_summary(self, cleaner_id: int) -> dict[str, Any]:
        totals = self.repo.totals_by_status(self.db, cleaner_id)

        def bucket(status: str) -> dict[str, int]:
            count, cents = totals.get(status, (0, 0))
            return {"count": count, "amountCents": cents}

        return {
            "cleanerId": cleaner_id,
            "pending": bucket("pending"),
            "held": bucket("held"),
            "completed": bucket("completed"),
            "recent": [
                {
                    "id": p.id,
                    "appointmentId": p.appointment_id,
                    "grossAmount": p.gross_amount,
                    "platformFee": p.platform_fee,
                    "netAmount": p.amount,
                    "incentiveApplied": p.incentive_applied,
                    "status": p.status,
                    "completedAt": p.completed_at,
                }
                for p in self.repo.recent_for_cleaner(self.db, cleaner_id)
            ],
        }
