"""
Schedule engine - materializes appointments from recurring schedules and
reconciles future bookings when a schedule is paused, edited or removed.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...config import Settings
from ...errors import NotFound, StateConflict, ValidationFailed
from ...models import Appointment, RecurringSchedule, User
from ...services.payment_gateway import GatewayError, PaymentGateway
from ...shared.money import dollars_to_cents
from ...shared.validators import (
    validate_date_range,
    validate_day_of_week,
    validate_frequency,
    validate_time_window,
)
from ..billing.service import BillingLedger
from ..payments.repository import PaymentRepository
from ..payouts.service import PayoutEngine
from .recurrence import ONE_DAY, RecurrenceRule, iter_occurrences, next_occurrence
from .repository import ScheduleRepository
from .schemas import ScheduleCreate, ScheduleUpdate

logger = logging.getLogger(__name__)

MAX_WEEKS_AHEAD = 52


class ScheduleEngine:
    """Service layer for recurring schedules"""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        ledger: Optional[BillingLedger] = None,
        payouts: Optional[PayoutEngine] = None,
        gateway: Optional[PaymentGateway] = None,
    ):
        self.db = db
        self.settings = settings
        self.ledger = ledger or BillingLedger(db)
        self.payouts = payouts or PayoutEngine(db, settings)
        self.gateway = gateway
        self.repo = ScheduleRepository()
        self.payment_repo = PaymentRepository()
        self._holds_to_release: list[tuple[int, int, str, int]] = []

    # ========================================================================
    # GENERATION
    # ========================================================================

    def horizon_for(self, schedule: RecurringSchedule, today: date, weeks: Optional[int] = None) -> date:
        weeks = weeks if weeks is not None else self.settings.horizon_weeks.get(schedule.frequency, 4)
        return today + timedelta(weeks=weeks)

    def generate(
        self,
        schedule: RecurringSchedule,
        horizon_weeks: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[Appointment]:
        """
        Create the schedule's missing appointments up to the horizon.

        An existing appointment for the same home and date is never duplicated,
        so running this twice in a row creates nothing the second time. The
        cursor (last_generated_date) advances with each created appointment in
        the same flush. Does not commit.
        """
        today = today or date.today()
        if schedule.is_paused and schedule.paused_until is None:
            logger.info(f"⏸️ Schedule {schedule.id} is paused indefinitely, nothing to generate")
            return []

        rule = RecurrenceRule.from_schedule(schedule)
        horizon = self.horizon_for(schedule, today, horizon_weeks)
        created = []

        for occurrence in iter_occurrences(rule, schedule.last_generated_date, horizon):
            if occurrence < today:
                continue
            if schedule.is_paused and occurrence <= schedule.paused_until:
                continue
            if self.repo.find_appointment(self.db, schedule.home_id, occurrence):
                continue

            appointment = self._materialize(schedule, occurrence)
            schedule.last_generated_date = occurrence
            self.db.flush()
            created.append(appointment)

        schedule.next_scheduled_date = self._next_scheduled(schedule, rule, today)
        self.db.flush()

        if created:
            logger.info(
                f"📅 Schedule {schedule.id}: created {len(created)} appointment(s) through {horizon}"
            )
        return created

    def _next_scheduled(self, schedule: RecurringSchedule, rule: RecurrenceRule, today: date) -> Optional[date]:
        upcoming = next_occurrence(rule, today)
        if upcoming and schedule.is_paused and schedule.paused_until and upcoming <= schedule.paused_until:
            upcoming = next_occurrence(rule, schedule.paused_until + ONE_DAY)
        return upcoming

    def _materialize(self, schedule: RecurringSchedule, occurrence: date) -> Appointment:
        appointment = self.repo.create_appointment(
            self.db,
            user_id=schedule.client_id,
            home_id=schedule.home_id,
            date=occurrence,
            price=schedule.price,
            original_price=schedule.price,
            time_window=schedule.time_window or "anytime",
            employees_assigned=[schedule.cleaner_id],
            booked_by_cleaner_id=schedule.cleaner_id,
            recurring_schedule_id=schedule.id,
            payment_status="pending",
            completion_status="in_progress",
        )
        self.repo.add_cleaner_link(self.db, appointment, schedule.cleaner_id)
        self.ledger.credit(schedule.client_id, schedule.price)
        self.payouts.create_for_appointment(appointment)
        return appointment

    def generate_locked(
        self, schedule_id: int, today: Optional[date] = None, horizon_weeks: Optional[int] = None
    ) -> list[Appointment]:
        """Generate for one schedule under its row lock and commit"""
        schedule = self.repo.get_schedule_for_update(self.db, schedule_id)
        if not schedule:
            raise NotFound("Schedule not found")
        if not schedule.is_active:
            self.db.rollback()
            return []
        created = self.generate(schedule, horizon_weeks, today)
        self.db.commit()
        return created

    # ========================================================================
    # RECONCILIATION
    # ========================================================================

    def reconcile_future_appointments(self, schedule: RecurringSchedule, today: Optional[date] = None) -> dict[str, int]:
        """
        Remove the schedule's unpaid future appointments together with their
        cleaner links, employee assignments, payouts and ledger amounts. Paid
        appointments are kept and only counted. Does not commit.
        """
        today = today or date.today()
        cancelled = 0
        skipped_paid = 0

        for appointment in self.repo.future_appointments(self.db, schedule.id, today):
            if appointment.paid:
                skipped_paid += 1
                continue
            self._remove_appointment(appointment)
            cancelled += 1

        if cancelled or skipped_paid:
            logger.info(
                f"🧹 Schedule {schedule.id}: removed {cancelled} future appointment(s), "
                f"kept {skipped_paid} paid"
            )
        return {"cancelledAppointments": cancelled, "skippedPaidAppointments": skipped_paid}

    def _remove_appointment(self, appointment: Appointment) -> None:
        if appointment.payment_hold_id and appointment.payment_status == "authorized":
            self._holds_to_release.append(
                (
                    appointment.id,
                    appointment.user_id,
                    appointment.payment_hold_id,
                    dollars_to_cents(appointment.price),
                )
            )

        self.payouts.discard_for_appointment(appointment.id)
        self.ledger.debit(appointment.user_id, appointment.price)
        self.repo.delete_appointment(self.db, appointment)

    def _record_hold_release(
        self, appointment_id: int, user_id: int, hold_id: str, amount_cents: int, status: str, description=None
    ) -> None:
        self.payment_repo.record_transaction(
            self.db,
            transaction_id=f"txn_{uuid.uuid4().hex}",
            type="cancellation",
            status=status,
            amount_cents=amount_cents,
            currency=self.settings.currency,
            user_id=user_id,
            gateway_reference=hold_id,
            description=description,
            details={"appointmentId": appointment_id},
            processed_at=datetime.utcnow(),
        )

    def commit_and_release_holds(self) -> dict[str, int]:
        """
        Commit the reconciled schedule, then cancel the holds of the removed
        appointments. A hold the gateway could not cancel is left as a
        needs_reconciliation cancellation for the reconciliation worker.
        """
        self.db.commit()
        pending, self._holds_to_release = self._holds_to_release, []
        released = 0
        failed = 0

        for appointment_id, user_id, hold_id, amount_cents in pending:
            try:
                if self.gateway is None:
                    raise GatewayError("No payment gateway configured")
                self.gateway.cancel_hold(hold_id)
            except GatewayError as e:
                failed += 1
                logger.error(f"❌ Could not release hold {hold_id} of removed appointment {appointment_id}: {e.message}")
                self._record_hold_release(
                    appointment_id, user_id, hold_id, amount_cents, "needs_reconciliation", e.message[:500]
                )
            else:
                released += 1
                self._record_hold_release(appointment_id, user_id, hold_id, amount_cents, "canceled")
            self.db.commit()

        return {"holdsReleased": released, "holdsPendingRelease": failed}

    # ========================================================================
    # SCHEDULE OPERATIONS
    # ========================================================================

    def _validate_rule(
        self,
        frequency: Optional[str],
        day_of_week: Optional[int],
        time_window: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        price: Optional[float],
    ) -> str:
        try:
            validate_frequency(frequency)
            validate_day_of_week(day_of_week)
            window = validate_time_window(time_window)
            if not start_date:
                raise ValueError("Start date is required")
            validate_date_range(start_date, end_date)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e

        if price is not None and price <= 0:
            raise ValidationFailed("Price must be greater than 0")
        return window

    def get_owned_schedule(self, schedule_id: int, cleaner: User) -> RecurringSchedule:
        schedule = self.repo.get_schedule(self.db, schedule_id, cleaner.id)
        if not schedule:
            raise NotFound("Schedule not found")
        return schedule

    def _lock_owned_schedule(self, schedule_id: int, cleaner: User) -> RecurringSchedule:
        schedule = self.get_owned_schedule(schedule_id, cleaner)
        return self.repo.get_schedule_for_update(self.db, schedule.id)

    def create_schedule(self, cleaner: User, data: ScheduleCreate, today: Optional[date] = None) -> dict[str, Any]:
        """Create a schedule over an active cleaner-client relationship and generate its first appointments"""
        if not data.cleanerClientId:
            raise ValidationFailed("cleanerClientId is required")
        time_window = self._validate_rule(
            data.frequency, data.dayOfWeek, data.timeWindow, data.startDate, data.endDate, data.price
        )

        relationship = self.repo.get_cleaner_client(self.db, data.cleanerClientId, cleaner.id)
        if not relationship or relationship.status != "active":
            raise NotFound("Client relationship not found or inactive")
        if not relationship.client_id or not relationship.home_id:
            raise ValidationFailed("Client must have an account and home to create a recurring schedule")

        price = data.price if data.price is not None else relationship.default_price
        if price is None or price <= 0:
            raise ValidationFailed("Price is required when the client has no default price")

        schedule = RecurringSchedule(
            cleaner_id=cleaner.id,
            cleaner_client_id=relationship.id,
            client_id=relationship.client_id,
            home_id=relationship.home_id,
            frequency=data.frequency,
            day_of_week=data.dayOfWeek,
            time_window=time_window,
            price=price,
            start_date=data.startDate,
            end_date=data.endDate,
            is_active=True,
            is_paused=False,
        )
        self.db.add(schedule)
        self.db.flush()

        created = self.generate(schedule, today=today)
        self.db.commit()
        self.db.refresh(schedule)
        logger.info(
            f"✅ Cleaner {cleaner.id} created {schedule.frequency} schedule {schedule.id} "
            f"({len(created)} appointment(s))"
        )
        return {"schedule": schedule, "newAppointmentsCreated": len(created)}

    def list_schedules(
        self, cleaner: User, cleaner_client_id: Optional[int] = None, active_only: bool = False
    ) -> list[RecurringSchedule]:
        return self.repo.list_for_cleaner(self.db, cleaner.id, cleaner_client_id, active_only)

    def list_client_schedules(self, homeowner: User) -> list[RecurringSchedule]:
        return self.repo.list_for_client(self.db, homeowner.id)

    def get_schedule(self, schedule_id: int, cleaner: User, today: Optional[date] = None) -> dict[str, Any]:
        schedule = self.get_owned_schedule(schedule_id, cleaner)
        upcoming = self.repo.upcoming_appointments(self.db, schedule.id, today or date.today())
        return {"schedule": schedule, "upcomingAppointments": upcoming}

    def update_schedule(
        self, schedule_id: int, cleaner: User, data: ScheduleUpdate, today: Optional[date] = None
    ) -> dict[str, Any]:
        """Edit the rule, drop unpaid future bookings, reset the cursor and regenerate"""
        today = today or date.today()
        schedule = self._lock_owned_schedule(schedule_id, cleaner)
        if not schedule.is_active:
            raise StateConflict("Cannot edit an inactive schedule")

        frequency = data.frequency if data.frequency is not None else schedule.frequency
        day_of_week = data.dayOfWeek if data.dayOfWeek is not None else schedule.day_of_week
        time_window = data.timeWindow if data.timeWindow is not None else schedule.time_window
        price = data.price if data.price is not None else schedule.price
        start_date = data.startDate if data.startDate is not None else schedule.start_date
        end_date = schedule.end_date
        if "endDate" in data.model_fields_set:
            end_date = data.endDate

        time_window = self._validate_rule(frequency, day_of_week, time_window, start_date, end_date, price)

        schedule.frequency = frequency
        schedule.day_of_week = day_of_week
        schedule.time_window = time_window
        schedule.price = price
        schedule.start_date = start_date
        schedule.end_date = end_date

        counts = self.reconcile_future_appointments(schedule, today)
        schedule.last_generated_date = None

        created = [] if schedule.is_paused else self.generate(schedule, today=today)
        counts.update(self.commit_and_release_holds())
        self.db.refresh(schedule)
        return {"schedule": schedule, **counts, "newAppointmentsCreated": len(created)}

    def deactivate_schedule(self, schedule_id: int, cleaner: User, today: Optional[date] = None) -> dict[str, Any]:
        """Retire a schedule; it is kept for history, never hard-deleted"""
        schedule = self._lock_owned_schedule(schedule_id, cleaner)
        counts = self.reconcile_future_appointments(schedule, today)
        schedule.is_active = False
        schedule.next_scheduled_date = None
        counts.update(self.commit_and_release_holds())
        logger.info(f"🗑️ Schedule {schedule.id} deactivated by cleaner {cleaner.id}")
        return {"message": "Recurring schedule deactivated", **counts}

    def pause_schedule(
        self,
        schedule_id: int,
        cleaner: User,
        until: Optional[date] = None,
        reason: Optional[str] = None,
        today: Optional[date] = None,
    ) -> dict[str, Any]:
        today = today or date.today()
        schedule = self._lock_owned_schedule(schedule_id, cleaner)
        if not schedule.is_active:
            raise StateConflict("Cannot pause an inactive schedule")
        if until is not None and until < today:
            raise ValidationFailed("Pause end date cannot be in the past")

        counts = self.reconcile_future_appointments(schedule, today)
        # Removed dates after the pause window must be regenerated later
        schedule.last_generated_date = None
        schedule.is_paused = True
        schedule.paused_until = until
        schedule.pause_reason = reason
        schedule.next_scheduled_date = (
            self._next_scheduled(schedule, RecurrenceRule.from_schedule(schedule), today) if until else None
        )
        counts.update(self.commit_and_release_holds())
        self.db.refresh(schedule)
        logger.info(f"⏸️ Schedule {schedule.id} paused until {until or 'further notice'}")
        return {"schedule": schedule, **counts}

    def resume_schedule(self, schedule_id: int, cleaner: User, today: Optional[date] = None) -> dict[str, Any]:
        schedule = self._lock_owned_schedule(schedule_id, cleaner)
        if not schedule.is_active:
            raise StateConflict("Cannot resume an inactive schedule")
        if not schedule.is_paused:
            raise StateConflict("Schedule is not paused")

        schedule.is_paused = False
        schedule.paused_until = None
        schedule.pause_reason = None
        created = self.generate(schedule, today=today)
        self.db.commit()
        self.db.refresh(schedule)
        logger.info(f"▶️ Schedule {schedule.id} resumed, {len(created)} appointment(s) created")
        return {"schedule": schedule, "newAppointmentsCreated": len(created)}

    def generate_for_schedule(
        self,
        schedule_id: int,
        cleaner: User,
        weeks_ahead: Optional[int] = None,
        today: Optional[date] = None,
    ) -> dict[str, Any]:
        if weeks_ahead is not None and not 1 <= weeks_ahead <= MAX_WEEKS_AHEAD:
            raise ValidationFailed(f"weeksAhead must be between 1 and {MAX_WEEKS_AHEAD}")

        schedule = self._lock_owned_schedule(schedule_id, cleaner)
        if not schedule.is_active:
            raise StateConflict("Cannot generate appointments for an inactive schedule")
        if schedule.is_paused:
            raise StateConflict("Cannot generate appointments for a paused schedule")

        created = self.generate(schedule, weeks_ahead, today)
        self.db.commit()
        return {
            "schedule": schedule,
            "newAppointmentsCreated": len(created),
            "appointments": created,
        }
