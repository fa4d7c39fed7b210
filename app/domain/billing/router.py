"""Billing router - FastAPI endpoints for user bills"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import BillResponse
from .service import BillingLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def get_billing_ledger(db: Session = Depends(get_db)) -> BillingLedger:
    """Dependency injection for BillingLedger"""
    return BillingLedger(db)


@router.get("/bill", response_model=BillResponse)
async def get_bill(
    current_user: User = Depends(get_current_user),
    ledger: BillingLedger = Depends(get_billing_ledger),
):
    """Outstanding and paid totals for the current user"""
    return ledger.get_bill(current_user.id)
