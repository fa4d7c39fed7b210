"""Billing repository - Database operations for user bills"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import UserBills


class BillingRepository:
    """Repository for user bill database operations"""

    @staticmethod
    def get_bill(db: Session, user_id: int) -> Optional[UserBills]:
        return db.query(UserBills).filter(UserBills.user_id == user_id).first()

    @staticmethod
    def get_bill_for_update(db: Session, user_id: int) -> Optional[UserBills]:
        """Fetch a bill row locked for the rest of the transaction"""
        return (
            db.query(UserBills)
            .filter(UserBills.user_id == user_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def create_bill(db: Session, user_id: int) -> UserBills:
        """Create an empty bill (flushed, not committed)"""
        bill = UserBills(
            user_id=user_id,
            appointment_due=0.0,
            cancellation_fee=0.0,
            total_due=0.0,
            appointment_paid=0.0,
            cancellation_paid=0.0,
            total_paid=0.0,
        )
        db.add(bill)
        db.flush()
        return bill
