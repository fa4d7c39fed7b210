"""
Payout Routes for Cleaner Earnings Tracking
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_cleaner
from ...config import Settings, get_settings
from ...database import get_db
from ...models import User
from .service import PayoutEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["Payouts"])


def get_payout_engine(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> PayoutEngine:
    return PayoutEngine(db, settings)


@router.get("/earnings")
async def get_earnings(
    current_user: User = Depends(require_cleaner),
    engine: PayoutEngine = Depends(get_payout_engine),
):
    """Pending, held and completed earnings for the current cleaner"""
    return engine.earnings_summary(current_user.id)
