from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Payout(Base):
    """Per-appointment, per-cleaner earning record (amounts in cents)"""

    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    gross_amount = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)  # Net to cleaner
    pre_incentive_fee = Column(Integer, nullable=True)
    incentive_applied = Column(Boolean, default=False, nullable=False)

    status = Column(String(20), default="pending", nullable=False)  # pending, held, completed
    payment_captured_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment")


class IncentiveConfig(Base):
    """Append-only incentive settings; only the newest row is active"""

    __tablename__ = "incentive_configs"

    id = Column(Integer, primary_key=True, index=True)

    cleaner_incentive_enabled = Column(Boolean, default=False, nullable=False)
    cleaner_fee_reduction_percent = Column(Float, default=1.0, nullable=False)
    cleaner_eligibility_days = Column(Integer, default=30, nullable=False)
    cleaner_max_cleanings = Column(Integer, default=5, nullable=False)

    homeowner_incentive_enabled = Column(Boolean, default=False, nullable=False)
    homeowner_discount_percent = Column(Float, default=0.10, nullable=False)
    homeowner_max_cleanings = Column(Integer, default=4, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    change_note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class PaymentTransaction(Base):
    """Audit row for every money movement through the gateway"""

    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(String(64), unique=True, nullable=False, index=True)
    # authorization, capture, refund, cancellation, payout_release, cancellation_fee
    type = Column(String(30), nullable=False)
    # succeeded, failed, canceled, needs_reconciliation, reconciled
    status = Column(String(30), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), default="usd")

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True, index=True)
    payout_id = Column(Integer, ForeignKey("payouts.id"), nullable=True)

    gateway_reference = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
