"""
Billing ledger - per-user running balance of what is owed and what was paid.

Every method mutates the bill inside the caller's transaction and never
commits, so an appointment change and its ledger delta persist together.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import ValidationFailed
from ...models import UserBills
from ...shared.money import round_currency, to_decimal
from .repository import BillingRepository

logger = logging.getLogger(__name__)

DUE_COLUMNS = {"appointment": "appointment_due", "cancellation": "cancellation_fee"}
PAID_COLUMNS = {"appointment": "appointment_paid", "cancellation": "cancellation_paid"}


def _check_bucket(bucket: str) -> None:
    if bucket not in DUE_COLUMNS:
        raise ValidationFailed(f"Unknown ledger bucket: {bucket}")


def _add(current: Optional[float], delta) -> float:
    return round_currency(to_decimal(current or 0) + to_decimal(delta))


class BillingLedger:
    """Service layer for user bill balances"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def _refresh_totals(self, bill: UserBills) -> None:
        bill.total_due = _add(bill.appointment_due, bill.cancellation_fee)
        bill.total_paid = _add(bill.appointment_paid, bill.cancellation_paid)

    def credit(self, user_id: int, amount: float, bucket: str = "appointment") -> UserBills:
        """Add an amount owed, creating the bill on first use"""
        _check_bucket(bucket)
        bill = self.repo.get_bill_for_update(self.db, user_id)
        if not bill:
            bill = self.repo.create_bill(self.db, user_id)

        column = DUE_COLUMNS[bucket]
        setattr(bill, column, _add(getattr(bill, column), amount))
        self._refresh_totals(bill)
        self.db.flush()
        return bill

    def debit(self, user_id: int, amount: float, bucket: str = "appointment") -> Optional[UserBills]:
        """Remove an amount owed. A missing bill is treated as a zero balance."""
        _check_bucket(bucket)
        bill = self.repo.get_bill_for_update(self.db, user_id)
        if not bill:
            logger.info(f"No bill for user {user_id}, skipping debit of {amount}")
            return None

        column = DUE_COLUMNS[bucket]
        new_value = _add(getattr(bill, column), -to_decimal(amount))
        if new_value < 0:
            logger.warning(
                f"⚠️ Ledger {column} for user {user_id} would go negative ({new_value}), clamping to 0"
            )
            new_value = 0.0
        setattr(bill, column, new_value)
        self._refresh_totals(bill)
        self.db.flush()
        return bill

    def record_payment(self, user_id: int, amount: float, bucket: str = "appointment") -> UserBills:
        """Move a captured amount from due to paid"""
        self.debit(user_id, amount, bucket)
        bill = self.repo.get_bill(self.db, user_id) or self.repo.create_bill(self.db, user_id)
        column = PAID_COLUMNS[bucket]
        setattr(bill, column, _add(getattr(bill, column), amount))
        self._refresh_totals(bill)
        self.db.flush()
        return bill

    def record_refund(self, user_id: int, amount: float, bucket: str = "appointment") -> Optional[UserBills]:
        """Reverse a previously recorded payment"""
        _check_bucket(bucket)
        bill = self.repo.get_bill_for_update(self.db, user_id)
        if not bill:
            logger.info(f"No bill for user {user_id}, skipping refund of {amount}")
            return None

        column = PAID_COLUMNS[bucket]
        bill_value = _add(getattr(bill, column), -to_decimal(amount))
        setattr(bill, column, max(bill_value, 0.0))
        self._refresh_totals(bill)
        self.db.flush()
        return bill

    def get_bill(self, user_id: int) -> dict:
        bill = self.repo.get_bill(self.db, user_id)
        if not bill:
            return {
                "userId": user_id,
                "appointmentDue": 0.0,
                "cancellationFee": 0.0,
                "totalDue": 0.0,
                "appointmentPaid": 0.0,
                "cancellationPaid": 0.0,
                "totalPaid": 0.0,
            }
        return {
            "userId": user_id,
            "appointmentDue": bill.appointment_due,
            "cancellationFee": bill.cancellation_fee,
            "totalDue": bill.total_due,
            "appointmentPaid": bill.appointment_paid,
            "cancellationPaid": bill.cancellation_paid,
            "totalPaid": bill.total_paid,
        }
