"""Incentive router - FastAPI endpoints for incentive configuration and eligibility"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_cleaner, require_homeowner, require_owner
from ...database import get_db
from ...models import User
from .schemas import IncentiveConfigUpdate
from .service import IncentiveEvaluator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/incentives", tags=["Incentives"])


def get_incentive_evaluator(db: Session = Depends(get_db)) -> IncentiveEvaluator:
    """Dependency injection for IncentiveEvaluator"""
    return IncentiveEvaluator(db)


# ============================================================================
# PUBLIC
# ============================================================================


@router.get("/current")
async def current_incentives(evaluator: IncentiveEvaluator = Depends(get_incentive_evaluator)):
    """Active incentive settings (defaults when none have been saved)"""
    return evaluator.current_config()


# ============================================================================
# OWNER CONFIGURATION
# ============================================================================


@router.get("/config")
async def get_config(
    _owner: User = Depends(require_owner),
    evaluator: IncentiveEvaluator = Depends(get_incentive_evaluator),
):
    return evaluator.current_config()


@router.put("/config")
async def update_config(
    data: IncentiveConfigUpdate,
    owner: User = Depends(require_owner),
    evaluator: IncentiveEvaluator = Depends(get_incentive_evaluator),
):
    """Save a new incentive configuration version"""
    config = evaluator.update_config(data.to_changes(), owner.id, data.changeNote)
    return {"success": True, "config": config}


@router.get("/history")
async def config_history(
    limit: int = Query(20, ge=1, le=100),
    _owner: User = Depends(require_owner),
    evaluator: IncentiveEvaluator = Depends(get_incentive_evaluator),
):
    return {"history": evaluator.config_history(limit)}


# ============================================================================
# ELIGIBILITY
# ============================================================================


@router.get("/cleaner-eligibility")
async def cleaner_eligibility(
    current_user: User = Depends(require_cleaner),
    evaluator: IncentiveEvaluator = Depends(get_incentive_evaluator),
):
    return evaluator.cleaner_eligibility(current_user.id)


@router.get("/homeowner-eligibility")
async def homeowner_eligibility(
    current_user: User = Depends(require_homeowner),
    evaluator: IncentiveEvaluator = Depends(get_incentive_evaluator),
):
    return evaluator.homeowner_eligibility(current_user.id)
