"""Incentive repository - Database operations for incentive configs and counters"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, User
from ...models_payout import IncentiveConfig, Payout


class IncentiveRepository:
    """Repository for incentive database operations"""

    @staticmethod
    def get_active_config(db: Session) -> Optional[IncentiveConfig]:
        return (
            db.query(IncentiveConfig)
            .filter(IncentiveConfig.is_active == True)  # noqa: E712
            .order_by(IncentiveConfig.id.desc())
            .first()
        )

    @staticmethod
    def get_history(db: Session, limit: int = 20) -> list[IncentiveConfig]:
        return db.query(IncentiveConfig).order_by(IncentiveConfig.id.desc()).limit(limit).all()

    @staticmethod
    def create_active_config(db: Session, **config_data) -> IncentiveConfig:
        """Deactivate the current config and insert a new active one"""
        db.query(IncentiveConfig).filter(IncentiveConfig.is_active == True).update(  # noqa: E712
            {IncentiveConfig.is_active: False}, synchronize_session=False
        )
        config = IncentiveConfig(is_active=True, **config_data)
        db.add(config)
        db.commit()
        db.refresh(config)
        return config

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def count_completed_payouts(db: Session, cleaner_id: int) -> int:
        return (
            db.query(func.count(Payout.id))
            .filter(Payout.cleaner_id == cleaner_id, Payout.status == "completed")
            .scalar()
            or 0
        )

    @staticmethod
    def count_completed_appointments(db: Session, user_id: int) -> int:
        return (
            db.query(func.count(Appointment.id))
            .filter(Appointment.user_id == user_id, Appointment.completed == True)  # noqa: E712
            .scalar()
            or 0
        )
