"""
Job completion - two-step flow. The cleaner submits (with photo evidence),
the homeowner approves or the auto-approval window lapses, and only then are
payouts released.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...config import Settings
from ...errors import DomainError, NotAuthorized, NotFound, PhotosRequired, StateConflict
from ...models import Appointment
from ...services.payment_gateway import PaymentGateway
from .service import RETRYABLE_STATUSES, PaymentLifecycle

logger = logging.getLogger(__name__)

APPROVED_STATUSES = ("approved", "auto_approved", "completed")


class CompletionService:
    """Service layer for cleaner completion and homeowner approval"""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        gateway: PaymentGateway,
        lifecycle: Optional[PaymentLifecycle] = None,
    ):
        self.db = db
        self.settings = settings
        self.lifecycle = lifecycle or PaymentLifecycle(db, settings, gateway)
        self.payouts = self.lifecycle.payouts
        self.repo = self.lifecycle.repo

    def _is_finished(self, appointment: Appointment) -> bool:
        return appointment.completed or appointment.completion_status in APPROVED_STATUSES

    def _check_photos(self, appointment: Appointment, cleaner_id: int) -> None:
        """Before and after photos are required unless this is the home's preferred cleaner"""
        home = self.repo.get_home(self.db, appointment.home_id)
        if home and home.preferred_cleaner_id == cleaner_id:
            return
        if self.repo.count_photos(self.db, appointment.id, cleaner_id, "before") == 0:
            raise PhotosRequired("before")
        if self.repo.count_photos(self.db, appointment.id, cleaner_id, "after") == 0:
            raise PhotosRequired("after")

    def _serialize(self, appointment: Appointment, **extra: Any) -> dict[str, Any]:
        result = {
            "appointmentId": appointment.id,
            "completionStatus": appointment.completion_status,
            "completed": appointment.completed,
            "submittedAt": appointment.completion_submitted_at,
            "autoApprovalExpiresAt": appointment.auto_approval_expires_at,
            "approvedAt": appointment.completion_approved_at,
            "homeownerFeedbackRequired": appointment.homeowner_feedback_required,
            "paymentStatus": appointment.payment_status,
        }
        result.update(extra)
        return result

    # ========================================================================
    # CLEANER SIDE
    # ========================================================================

    def submit_completion(
        self,
        appointment_id: int,
        cleaner_id: int,
        checklist: Optional[dict] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        now = now or datetime.utcnow()
        appointment = self.lifecycle.load_for_update(appointment_id)

        if cleaner_id not in appointment.assigned_cleaner_ids:
            raise NotAuthorized("You are not assigned to this appointment")
        if appointment.was_cancelled:
            raise StateConflict("Appointment was cancelled")
        if self._is_finished(appointment):
            raise StateConflict("Job already marked as complete")
        if appointment.completion_status == "submitted":
            raise StateConflict("Completion already submitted")

        self._check_photos(appointment, cleaner_id)

        appointment.completion_status = "submitted"
        appointment.completion_submitted_at = now
        appointment.auto_approval_expires_at = now + timedelta(hours=self.settings.auto_approval_hours)
        appointment.completion_checklist = checklist
        appointment.completion_notes = notes
        self.db.commit()

        logger.info(
            f"✅ Cleaner {cleaner_id} submitted completion for appointment {appointment.id}, "
            f"auto-approves at {appointment.auto_approval_expires_at}"
        )
        return self._serialize(appointment, success=True)

    # ========================================================================
    # HOMEOWNER SIDE
    # ========================================================================

    def approve_completion(
        self,
        appointment_id: int,
        user_id: Optional[int],
        now: Optional[datetime] = None,
        auto: bool = False,
        feedback_required: bool = False,
    ) -> dict[str, Any]:
        """
        Approve a submitted job. Payment is captured first if needed, then the
        approval and payout release commit together.
        """
        now = now or datetime.utcnow()
        appointment = self.lifecycle.load_for_update(appointment_id)
        if not auto:
            self.lifecycle.require_homeowner(appointment, user_id)

        if self._is_finished(appointment):
            raise StateConflict("Completion already approved")
        if appointment.completion_status != "submitted":
            raise StateConflict("Job completion has not been submitted")
        if appointment.was_cancelled:
            raise StateConflict("Appointment was cancelled")

        captured_hold_id = None
        if not appointment.paid:
            if not appointment.payment_hold_id or appointment.payment_status not in RETRYABLE_STATUSES:
                self.lifecycle.create_hold(appointment)
                self.db.flush()
            hold = self.lifecycle.gateway_capture(appointment)
            self.lifecycle.apply_capture(appointment, hold, now)
            captured_hold_id = hold.id

        appointment.completion_status = "auto_approved" if auto else "approved"
        appointment.completed = True
        appointment.completion_approved_at = now
        appointment.completion_approved_by = None if auto else user_id
        appointment.homeowner_feedback_required = feedback_required
        appointment.auto_approval_expires_at = None

        released = self.payouts.release(appointment.id, now)
        for payout in released:
            self.lifecycle.log_transaction(
                "payout_release",
                "succeeded",
                appointment,
                amount_cents=payout["netAmount"],
                cleaner_id=payout["cleanerId"],
                payout_id=payout["payoutId"],
            )

        if captured_hold_id:
            self.lifecycle.commit_after_gateway(appointment.id, captured_hold_id, "capture")
        else:
            self.db.commit()

        logger.info(
            f"✅ Appointment {appointment.id} {'auto-' if auto else ''}approved, "
            f"{len(released)} payout(s) released"
        )
        return self._serialize(appointment, success=True, payouts=released)

    def request_review(
        self,
        appointment_id: int,
        user_id: int,
        concerns: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Approve (the cleaner is still paid) but flag the job for follow-up"""
        result = self.approve_completion(appointment_id, user_id, now=now, feedback_required=True)
        if concerns:
            appointment = self.repo.get_appointment(self.db, appointment_id)
            existing = appointment.completion_notes or ""
            appointment.completion_notes = f"{existing}\nHomeowner concerns: {concerns}".strip()
            self.db.commit()
        return result

    def decline_completion(
        self, appointment_id: int, user_id: int, reason: Optional[str] = None
    ) -> dict[str, Any]:
        """Send a submitted job back to the cleaner"""
        appointment = self.lifecycle.load_for_update(appointment_id)
        self.lifecycle.require_homeowner(appointment, user_id)
        if appointment.completion_status != "submitted":
            raise StateConflict("Only submitted jobs can be declined")

        appointment.completion_status = "declined"
        appointment.auto_approval_expires_at = None
        if reason:
            appointment.completion_notes = f"{appointment.completion_notes or ''}\nDeclined: {reason}".strip()
        self.db.commit()
        logger.info(f"↩️ Completion for appointment {appointment.id} declined by user {user_id}")
        return self._serialize(appointment, success=True)

    def completion_status(self, appointment_id: int, user_id: int) -> dict[str, Any]:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        if appointment.user_id != user_id and user_id not in appointment.assigned_cleaner_ids:
            raise NotAuthorized("Not authorized to view this appointment")
        return self._serialize(
            appointment,
            checklist=appointment.completion_checklist,
            notes=appointment.completion_notes,
            canBeApproved=appointment.completion_status == "submitted" and not appointment.completed,
        )

    def process_auto_approvals(self, now: Optional[datetime] = None) -> dict[str, int]:
        """Approve every submitted job whose review window has lapsed"""
        now = now or datetime.utcnow()
        summary = {"checked": 0, "approved": 0, "errors": 0}

        for appointment_id in self.repo.appointment_ids_past_auto_approval(self.db, now):
            summary["checked"] += 1
            try:
                self.approve_completion(appointment_id, None, now=now, auto=True)
                summary["approved"] += 1
            except DomainError as e:
                self.db.rollback()
                summary["errors"] += 1
                logger.error(f"❌ Auto-approval failed for appointment {appointment_id}: {e.message}")

        if summary["checked"]:
            logger.info(f"📊 Auto-approval run complete: {summary}")
        return summary
