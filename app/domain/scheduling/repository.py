"""Schedule repository - Database operations for recurring schedules and their appointments"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import (
    Appointment,
    CleanerAppointment,
    CleanerClient,
    EmployeeJobAssignment,
    RecurringSchedule,
)
from ...models_payout import PaymentTransaction


class ScheduleRepository:
    """Repository for recurring schedule database operations"""

    @staticmethod
    def get_schedule(db: Session, schedule_id: int, cleaner_id: Optional[int] = None) -> Optional[RecurringSchedule]:
        query = db.query(RecurringSchedule).filter(RecurringSchedule.id == schedule_id)
        if cleaner_id is not None:
            query = query.filter(RecurringSchedule.cleaner_id == cleaner_id)
        return query.first()

    @staticmethod
    def get_schedule_for_update(db: Session, schedule_id: int) -> Optional[RecurringSchedule]:
        """Row-lock a schedule; concurrent generators for it wait here"""
        return (
            db.query(RecurringSchedule)
            .filter(RecurringSchedule.id == schedule_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def list_for_cleaner(
        db: Session,
        cleaner_id: int,
        cleaner_client_id: Optional[int] = None,
        active_only: bool = False,
    ) -> list[RecurringSchedule]:
        query = db.query(RecurringSchedule).filter(RecurringSchedule.cleaner_id == cleaner_id)
        if cleaner_client_id is not None:
            query = query.filter(RecurringSchedule.cleaner_client_id == cleaner_client_id)
        if active_only:
            query = query.filter(RecurringSchedule.is_active == True)  # noqa: E712
        return query.order_by(RecurringSchedule.created_at.desc(), RecurringSchedule.id.desc()).all()

    @staticmethod
    def list_for_client(db: Session, client_id: int) -> list[RecurringSchedule]:
        return (
            db.query(RecurringSchedule)
            .filter(
                RecurringSchedule.client_id == client_id,
                RecurringSchedule.is_active == True,  # noqa: E712
            )
            .order_by(RecurringSchedule.id)
            .all()
        )

    @staticmethod
    def active_schedule_ids(db: Session) -> list[int]:
        rows = (
            db.query(RecurringSchedule.id)
            .filter(RecurringSchedule.is_active == True)  # noqa: E712
            .order_by(RecurringSchedule.id)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def get_cleaner_client(db: Session, cleaner_client_id: int, cleaner_id: int) -> Optional[CleanerClient]:
        return (
            db.query(CleanerClient)
            .filter(CleanerClient.id == cleaner_client_id, CleanerClient.cleaner_id == cleaner_id)
            .first()
        )

    # ------------------------------------------------------------------
    # Appointments owned by a schedule
    # ------------------------------------------------------------------

    @staticmethod
    def find_appointment(db: Session, home_id: int, on_date: date) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.home_id == home_id, Appointment.date == on_date)
            .first()
        )

    @staticmethod
    def create_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def add_cleaner_link(db: Session, appointment: Appointment, cleaner_id: int) -> CleanerAppointment:
        link = CleanerAppointment(appointment_id=appointment.id, employee_id=cleaner_id)
        appointment.cleaner_links.append(link)
        db.flush()
        return link

    @staticmethod
    def future_appointments(db: Session, schedule_id: int, today: date) -> list[Appointment]:
        """Uncancelled, uncompleted appointments of a schedule dated after today"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.recurring_schedule_id == schedule_id,
                Appointment.date > today,
                Appointment.was_cancelled == False,  # noqa: E712
                Appointment.completed == False,  # noqa: E712
            )
            .order_by(Appointment.date)
            .all()
        )

    @staticmethod
    def upcoming_appointments(db: Session, schedule_id: int, today: date, limit: int = 10) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.recurring_schedule_id == schedule_id,
                Appointment.date >= today,
                Appointment.was_cancelled == False,  # noqa: E712
            )
            .order_by(Appointment.date)
            .limit(limit)
            .all()
        )

    @staticmethod
    def delete_appointment(db: Session, appointment: Appointment) -> None:
        """
        Delete an appointment with its employee assignments. Cleaner links and
        photos cascade; audit rows are detached rather than deleted.
        """
        db.query(EmployeeJobAssignment).filter(
            EmployeeJobAssignment.appointment_id == appointment.id
        ).delete(synchronize_session=False)
        db.query(PaymentTransaction).filter(
            PaymentTransaction.appointment_id == appointment.id
        ).update({PaymentTransaction.appointment_id: None}, synchronize_session=False)
        db.delete(appointment)
        db.flush()
