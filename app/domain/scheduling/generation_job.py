"""
Recurring appointment generation job.

Walks every active schedule and generates its appointments up to the
horizon. Each schedule gets its own session and transaction, so one bad
schedule is logged and counted without stopping the rest.
"""

import logging
from datetime import date
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ...config import Settings, get_settings
from ...services.payment_gateway import PaymentGateway
from .repository import ScheduleRepository
from .service import ScheduleEngine

logger = logging.getLogger(__name__)


def _process_schedule(engine: ScheduleEngine, schedule_id: int, today: date) -> dict[str, Any]:
    db = engine.db
    schedule = engine.repo.get_schedule_for_update(db, schedule_id)
    if not schedule or not schedule.is_active:
        db.rollback()
        return {"scheduleId": schedule_id, "status": "skipped", "reason": "inactive"}

    if schedule.is_paused:
        if schedule.paused_until is None:
            db.rollback()
            return {"scheduleId": schedule_id, "status": "skipped", "reason": "paused"}
        if schedule.paused_until < today:
            # Pause window is over
            logger.info(f"▶️ Schedule {schedule_id} pause ended {schedule.paused_until}, resuming")
            schedule.is_paused = False
            schedule.paused_until = None
            schedule.pause_reason = None
        elif schedule.paused_until >= engine.horizon_for(schedule, today):
            db.rollback()
            return {"scheduleId": schedule_id, "status": "skipped", "reason": "paused"}

    created = engine.generate(schedule, today=today)
    db.commit()
    return {"scheduleId": schedule_id, "status": "generated", "appointmentsCreated": len(created)}


def run_generation_job(
    session_factory: Callable[[], Session],
    settings: Optional[Settings] = None,
    today: Optional[date] = None,
    gateway: Optional[PaymentGateway] = None,
) -> dict[str, Any]:
    """
    Generate appointments for all active schedules.

    Returns:
        {schedulesProcessed, appointmentsCreated, skipped, errors, details}
    """
    settings = settings or get_settings()
    today = today or date.today()
    summary = {
        "schedulesProcessed": 0,
        "appointmentsCreated": 0,
        "skipped": 0,
        "errors": 0,
        "details": [],
    }

    db = session_factory()
    try:
        schedule_ids = ScheduleRepository.active_schedule_ids(db)
    finally:
        db.close()

    logger.info(f"🚀 Generation job started for {len(schedule_ids)} active schedule(s), today={today}")

    for schedule_id in schedule_ids:
        db = session_factory()
        try:
            engine = ScheduleEngine(db, settings, gateway=gateway)
            detail = _process_schedule(engine, schedule_id, today)
            if detail["status"] == "skipped":
                summary["skipped"] += 1
            else:
                summary["schedulesProcessed"] += 1
                summary["appointmentsCreated"] += detail["appointmentsCreated"]
            summary["details"].append(detail)
        except Exception as e:
            db.rollback()
            summary["errors"] += 1
            summary["details"].append({"scheduleId": schedule_id, "status": "error", "error": str(e)})
            logger.error(f"❌ Generation failed for schedule {schedule_id}: {str(e)}")
        finally:
            db.close()

    logger.info(
        f"📊 Generation job complete: processed={summary['schedulesProcessed']}, "
        f"created={summary['appointmentsCreated']}, skipped={summary['skipped']}, errors={summary['errors']}"
    )
    return summary
