"""Payment repository - Database operations for appointment payments and completion"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, Home, JobPhoto, User
from ...models_payout import PaymentTransaction


class PaymentRepository:
    """Repository for payment and completion database operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_appointment_for_update(db: Session, appointment_id: int) -> Optional[Appointment]:
        """Fresh, row-locked read taken right before a state transition"""
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def get_appointment_by_hold(db: Session, hold_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.payment_hold_id == hold_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def get_home(db: Session, home_id: int) -> Optional[Home]:
        return db.query(Home).filter(Home.id == home_id).first()

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def count_photos(db: Session, appointment_id: int, cleaner_id: int, photo_type: str) -> int:
        return (
            db.query(func.count(JobPhoto.id))
            .filter(
                JobPhoto.appointment_id == appointment_id,
                JobPhoto.cleaner_id == cleaner_id,
                JobPhoto.photo_type == photo_type,
            )
            .scalar()
            or 0
        )

    @staticmethod
    def appointment_ids_due_for_payment(db: Session, start: date, end: date) -> list[int]:
        """Unpaid, live appointments in [start, end] whose capture has not already failed"""
        rows = (
            db.query(Appointment.id)
            .filter(
                Appointment.date >= start,
                Appointment.date <= end,
                Appointment.paid == False,  # noqa: E712
                Appointment.was_cancelled == False,  # noqa: E712
                Appointment.completed == False,  # noqa: E712
                Appointment.payment_capture_failed == False,  # noqa: E712
            )
            .order_by(Appointment.date, Appointment.id)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def appointment_ids_past_auto_approval(db: Session, now: datetime) -> list[int]:
        """Lapsed submissions, minus those waiting on the homeowner to retry a declined capture"""
        rows = (
            db.query(Appointment.id)
            .filter(
                Appointment.completion_status == "submitted",
                Appointment.auto_approval_expires_at.isnot(None),
                Appointment.auto_approval_expires_at <= now,
                Appointment.payment_capture_failed == False,  # noqa: E712
            )
            .order_by(Appointment.auto_approval_expires_at)
            .all()
        )
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Transaction audit log
    # ------------------------------------------------------------------

    @staticmethod
    def record_transaction(db: Session, **transaction_data) -> PaymentTransaction:
        transaction = PaymentTransaction(**transaction_data)
        db.add(transaction)
        db.flush()
        return transaction

    @staticmethod
    def transactions_needing_reconciliation(db: Session) -> list[PaymentTransaction]:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.status == "needs_reconciliation")
            .order_by(PaymentTransaction.id)
            .all()
        )

    @staticmethod
    def transactions_for_appointment(db: Session, appointment_id: int) -> list[PaymentTransaction]:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.appointment_id == appointment_id)
            .order_by(PaymentTransaction.id)
            .all()
        )
