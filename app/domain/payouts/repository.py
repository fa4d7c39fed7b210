"""Payout repository - Database operations for cleaner payouts"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_payout import Payout


class PayoutRepository:
    """Repository for payout database operations"""

    @staticmethod
    def get_for_appointment(
        db: Session, appointment_id: int, statuses: Optional[tuple[str, ...]] = None
    ) -> list[Payout]:
        query = db.query(Payout).filter(Payout.appointment_id == appointment_id)
        if statuses:
            query = query.filter(Payout.status.in_(statuses))
        return query.order_by(Payout.id).all()

    @staticmethod
    def create_payout(db: Session, **payout_data) -> Payout:
        """Create a payout (flushed, committed by the caller)"""
        payout = Payout(**payout_data)
        db.add(payout)
        db.flush()
        return payout

    @staticmethod
    def delete_for_appointment(db: Session, appointment_id: int, statuses: tuple[str, ...]) -> int:
        return (
            db.query(Payout)
            .filter(Payout.appointment_id == appointment_id, Payout.status.in_(statuses))
            .delete(synchronize_session=False)
        )

    @staticmethod
    def totals_by_status(db: Session, cleaner_id: int) -> dict[str, tuple[int, int]]:
        """status -> (count, net cents)"""
        rows = (
            db.query(Payout.status, func.count(Payout.id), func.coalesce(func.sum(Payout.amount), 0))
            .filter(Payout.cleaner_id == cleaner_id)
            .group_by(Payout.status)
            .all()
        )
        return {status: (count, int(total)) for status, count, total in rows}

    @staticmethod
    def recent_for_cleaner(db: Session, cleaner_id: int, limit: int = 50) -> list[Payout]:
        return (
            db.query(Payout)
            .filter(Payout.cleaner_id == cleaner_id)
            .order_by(Payout.created_at.desc(), Payout.id.desc())
            .limit(limit)
            .all()
        )
