from datetime import date, timedelta

import pytest

from app.domain.billing.service import BillingLedger
from app.domain.payments.service import PaymentLifecycle
from app.domain.scheduling.schemas import ScheduleCreate, ScheduleUpdate
from app.domain.scheduling.service import ScheduleEngine
from app.errors import NotFound, StateConflict, ValidationFailed
from app.models import Appointment, CleanerAppointment, UserBills
from app.models_payout import Payout, PaymentTransaction
from app.services.payment_gateway import GatewayTimeout

from tests.factories import TODAY, book_appointment, make_user, unpaid_due

MONDAY = 1


def weekly_schedule(seeded, **overrides):
    data = {
        "cleanerClientId": seeded.relationship.id,
        "frequency": "weekly",
        "dayOfWeek": MONDAY,
        "startDate": TODAY,
    }
    data.update(overrides)
    return ScheduleCreate(**data)


def appointments_for(db, schedule_id):
    return (
        db.query(Appointment)
        .filter(Appointment.recurring_schedule_id == schedule_id)
        .order_by(Appointment.date)
        .all()
    )


def appointment_due(db, user_id):
    bill = db.query(UserBills).filter(UserBills.user_id == user_id).first()
    return bill.appointment_due if bill else 0.0


def test_create_schedule_generates_through_horizon(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    result = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)

    schedule = result["schedule"]
    assert result["newAppointmentsCreated"] == 5
    assert [a.date for a in appointments_for(db, schedule.id)] == [
        date(2026, 3, 2),
        date(2026, 3, 9),
        date(2026, 3, 16),
        date(2026, 3, 23),
        date(2026, 3, 30),
    ]
    assert schedule.last_generated_date == date(2026, 3, 30)
    assert schedule.next_scheduled_date == TODAY
    assert schedule.price == 120.0  # relationship default
    assert appointment_due(db, seeded.homeowner.id) == 600.0


def test_generated_appointments_get_links_and_pending_payouts(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    appointment = appointments_for(db, schedule.id)[0]
    assert appointment.assigned_cleaner_ids == [seeded.cleaner.id]
    assert appointment.booked_by_cleaner_id == seeded.cleaner.id
    assert db.query(CleanerAppointment).filter(CleanerAppointment.appointment_id == appointment.id).count() == 1

    payout = db.query(Payout).filter(Payout.appointment_id == appointment.id).one()
    assert payout.status == "pending"
    assert payout.gross_amount == 12000
    assert payout.platform_fee == 1200
    assert payout.amount == 10800


def test_generation_is_idempotent(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    assert engine.generate(schedule, today=TODAY) == []
    schedule.last_generated_date = None
    assert engine.generate(schedule, today=TODAY) == []
    db.commit()

    assert len(appointments_for(db, schedule.id)) == 5
    assert db.query(Payout).count() == 5
    assert appointment_due(db, seeded.homeowner.id) == 600.0


def test_existing_appointment_on_same_day_is_not_duplicated(db, settings, gateway, seeded):
    book_appointment(db, settings, seeded.homeowner, seeded.home, date(2026, 3, 9), cleaners=[seeded.cleaner])

    engine = ScheduleEngine(db, settings, gateway=gateway)
    result = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)

    assert result["newAppointmentsCreated"] == 4
    assert db.query(Appointment).filter(Appointment.date == date(2026, 3, 9)).count() == 1
    assert appointment_due(db, seeded.homeowner.id) == 600.0


def test_cursor_only_moves_forward(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    first_cursor = schedule.last_generated_date

    created = engine.generate(schedule, today=TODAY + timedelta(days=7))
    assert [a.date for a in created] == [date(2026, 4, 6)]
    assert schedule.last_generated_date == date(2026, 4, 6)
    assert schedule.last_generated_date > first_cursor

    assert engine.generate(schedule, today=TODAY) == []
    assert schedule.last_generated_date == date(2026, 4, 6)


def test_generation_skips_dates_before_today(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    result = engine.create_schedule(
        seeded.cleaner, weekly_schedule(seeded, startDate=date(2026, 2, 2)), today=TODAY
    )
    dates = [a.date for a in appointments_for(db, result["schedule"].id)]
    assert dates[0] == TODAY
    assert all(d >= TODAY for d in dates)


def test_create_schedule_validation(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)

    with pytest.raises(ValidationFailed, match="frequency"):
        engine.create_schedule(seeded.cleaner, weekly_schedule(seeded, frequency="daily"), today=TODAY)
    with pytest.raises(ValidationFailed, match="day of week"):
        engine.create_schedule(seeded.cleaner, weekly_schedule(seeded, dayOfWeek=7), today=TODAY)
    with pytest.raises(ValidationFailed, match="End date"):
        engine.create_schedule(
            seeded.cleaner, weekly_schedule(seeded, endDate=TODAY - timedelta(days=1)), today=TODAY
        )
    with pytest.raises(ValidationFailed, match="Price"):
        engine.create_schedule(seeded.cleaner, weekly_schedule(seeded, price=0), today=TODAY)
    with pytest.raises(ValidationFailed, match="cleanerClientId"):
        engine.create_schedule(seeded.cleaner, weekly_schedule(seeded, cleanerClientId=None), today=TODAY)


def test_create_schedule_requires_active_relationship(db, settings, gateway, seeded):
    seeded.relationship.status = "inactive"
    db.commit()
    engine = ScheduleEngine(db, settings, gateway=gateway)
    with pytest.raises(NotFound):
        engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)


def test_create_schedule_rejects_other_cleaners_relationship(db, settings, gateway, seeded):
    other_cleaner = make_user(db, "cleaner")
    db.commit()
    engine = ScheduleEngine(db, settings, gateway=gateway)
    with pytest.raises(NotFound):
        engine.create_schedule(other_cleaner, weekly_schedule(seeded), today=TODAY)


def test_pause_removes_unpaid_and_keeps_paid(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    ledger = BillingLedger(db)
    for appointment in appointments_for(db, schedule.id)[1:3]:
        appointment.paid = True
        appointment.payment_status = "captured"
        ledger.record_payment(seeded.homeowner.id, appointment.price)
    db.commit()

    result = engine.pause_schedule(
        schedule.id, seeded.cleaner, reason="Vacation", today=TODAY - timedelta(days=1)
    )

    assert result["cancelledAppointments"] == 3
    assert result["skippedPaidAppointments"] == 2
    remaining = appointments_for(db, schedule.id)
    assert [a.date for a in remaining] == [date(2026, 3, 9), date(2026, 3, 16)]
    assert all(a.paid for a in remaining)
    assert db.query(Payout).count() == 2

    assert schedule.is_paused is True
    assert schedule.paused_until is None
    assert schedule.pause_reason == "Vacation"
    assert appointment_due(db, seeded.homeowner.id) == unpaid_due(db, seeded.homeowner.id) == 0.0


def test_pause_with_end_date_then_generate_resumes_after_window(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    engine.pause_schedule(schedule.id, seeded.cleaner, until=date(2026, 3, 16), today=TODAY)
    assert [a.date for a in appointments_for(db, schedule.id)] == [TODAY]
    assert schedule.next_scheduled_date == date(2026, 3, 23)

    created = engine.generate(schedule, today=TODAY)
    db.commit()
    assert [a.date for a in created] == [date(2026, 3, 23), date(2026, 3, 30)]
    assert appointment_due(db, seeded.homeowner.id) == unpaid_due(db, seeded.homeowner.id)


def test_indefinite_pause_generates_nothing(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    engine.pause_schedule(schedule.id, seeded.cleaner, today=TODAY)

    assert engine.generate(schedule, today=TODAY) == []
    with pytest.raises(StateConflict):
        engine.generate_for_schedule(schedule.id, seeded.cleaner, today=TODAY)


def test_pause_rejects_past_end_date(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    with pytest.raises(ValidationFailed):
        engine.pause_schedule(schedule.id, seeded.cleaner, until=TODAY - timedelta(days=1), today=TODAY)


def test_resume_regenerates(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    engine.pause_schedule(schedule.id, seeded.cleaner, today=TODAY)

    result = engine.resume_schedule(schedule.id, seeded.cleaner, today=TODAY)
    assert result["newAppointmentsCreated"] == 4
    assert result["schedule"].is_paused is False
    assert len(appointments_for(db, schedule.id)) == 5
    assert appointment_due(db, seeded.homeowner.id) == 600.0

    with pytest.raises(StateConflict):
        engine.resume_schedule(schedule.id, seeded.cleaner, today=TODAY)


def test_update_reconciles_and_regenerates_with_new_price(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    result = engine.update_schedule(schedule.id, seeded.cleaner, ScheduleUpdate(price=150.0), today=TODAY)

    assert result["cancelledAppointments"] == 4
    assert result["skippedPaidAppointments"] == 0
    assert result["newAppointmentsCreated"] == 4
    prices = [a.price for a in appointments_for(db, schedule.id)]
    assert prices == [120.0, 150.0, 150.0, 150.0, 150.0]
    assert result["schedule"].last_generated_date == date(2026, 3, 30)
    assert appointment_due(db, seeded.homeowner.id) == unpaid_due(db, seeded.homeowner.id) == 720.0


def test_update_can_clear_end_date(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(
        seeded.cleaner, weekly_schedule(seeded, endDate=date(2026, 3, 9)), today=TODAY
    )["schedule"]
    assert len(appointments_for(db, schedule.id)) == 2

    result = engine.update_schedule(schedule.id, seeded.cleaner, ScheduleUpdate(endDate=None), today=TODAY)
    assert result["schedule"].end_date is None
    assert len(appointments_for(db, schedule.id)) == 5


def test_deactivate_keeps_schedule_and_removes_future(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    result = engine.deactivate_schedule(schedule.id, seeded.cleaner, today=TODAY)

    assert result["cancelledAppointments"] == 4
    assert schedule.is_active is False
    assert [a.date for a in appointments_for(db, schedule.id)] == [TODAY]
    assert appointment_due(db, seeded.homeowner.id) == 120.0

    with pytest.raises(StateConflict):
        engine.pause_schedule(schedule.id, seeded.cleaner, today=TODAY)


def test_removing_authorized_appointment_releases_hold(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    appointment = appointments_for(db, schedule.id)[1]
    hold = gateway.add_hold(12000)
    appointment.payment_hold_id = hold.id
    appointment.payment_status = "authorized"
    db.commit()

    engine.deactivate_schedule(schedule.id, seeded.cleaner, today=TODAY)

    assert gateway.holds[hold.id].status == "canceled"


def test_generate_for_schedule_checks_weeks_ahead(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    with pytest.raises(ValidationFailed):
        engine.generate_for_schedule(schedule.id, seeded.cleaner, weeks_ahead=53, today=TODAY)

    result = engine.generate_for_schedule(schedule.id, seeded.cleaner, weeks_ahead=6, today=TODAY)
    assert result["newAppointmentsCreated"] == 2
    assert [a.date for a in result["appointments"]] == [date(2026, 4, 6), date(2026, 4, 13)]


def test_schedules_are_scoped_to_their_cleaner(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    other_cleaner = make_user(db, "cleaner")
    db.commit()

    with pytest.raises(NotFound):
        engine.get_schedule(schedule.id, other_cleaner)
    assert engine.list_schedules(other_cleaner) == []
    assert [s.id for s in engine.list_client_schedules(seeded.homeowner)] == [schedule.id]


def hold_appointment(db, appointment, hold_id):
    appointment.payment_hold_id = hold_id
    appointment.payment_status = "authorized"
    db.commit()


def hold_release_records(db):
    return (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.type == "cancellation")
        .order_by(PaymentTransaction.id)
        .all()
    )


def test_failed_hold_release_is_left_for_reconciliation(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    first, second = appointments_for(db, schedule.id)[1:3]
    first_id, second_id = first.id, second.id
    hold = gateway.add_hold(12000)
    hold_appointment(db, first, hold.id)
    hold_appointment(db, second, "pi_missing")

    result = engine.pause_schedule(schedule.id, seeded.cleaner, today=TODAY)

    assert result["cancelledAppointments"] == 4
    assert result["holdsReleased"] == 1
    assert result["holdsPendingRelease"] == 1
    assert gateway.holds[hold.id].status == "canceled"
    remaining = [a.id for a in appointments_for(db, schedule.id)]
    assert first_id not in remaining
    assert second_id not in remaining

    released, pending = hold_release_records(db)
    assert (released.gateway_reference, released.status) == (hold.id, "canceled")
    assert (pending.gateway_reference, pending.status) == ("pi_missing", "needs_reconciliation")
    assert pending.details == {"appointmentId": second_id}
    assert pending.appointment_id is None


def test_unreleased_hold_is_cancelled_by_reconciliation(db, settings, gateway, seeded, monkeypatch):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]
    hold = gateway.add_hold(12000)
    hold_appointment(db, appointments_for(db, schedule.id)[1], hold.id)

    real_cancel = gateway.cancel_hold

    def cancel_times_out(hold_id):
        raise GatewayTimeout("Payment gateway request timed out")

    monkeypatch.setattr(gateway, "cancel_hold", cancel_times_out)
    result = engine.deactivate_schedule(schedule.id, seeded.cleaner, today=TODAY)
    assert result["holdsPendingRelease"] == 1
    assert gateway.holds[hold.id].status == "requires_capture"

    monkeypatch.setattr(gateway, "cancel_hold", real_cancel)
    summary = PaymentLifecycle(db, settings, gateway).reconcile_pending_captures()

    assert summary == {"checked": 1, "reconciled": 1, "errors": 0}
    assert gateway.holds[hold.id].status == "canceled"
    assert [r.status for r in hold_release_records(db)] == ["reconciled"]


def test_zero_weeks_is_an_explicit_horizon(db, settings, gateway, seeded):
    engine = ScheduleEngine(db, settings, gateway=gateway)
    schedule = engine.create_schedule(seeded.cleaner, weekly_schedule(seeded), today=TODAY)["schedule"]

    assert engine.horizon_for(schedule, TODAY, 0) == TODAY
    assert engine.horizon_for(schedule, TODAY) == TODAY + timedelta(weeks=4)
