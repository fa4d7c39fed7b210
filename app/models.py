from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(20), nullable=False, index=True)  # cleaner, homeowner, owner
    first_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    gateway_customer_id = Column(String(255), nullable=True)  # Stripe customer with a saved card
    gateway_payment_method_id = Column(String(255), nullable=True)  # Default card for holds
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    homes = relationship("Home", back_populates="owner", foreign_keys="Home.user_id")
    bill = relationship("UserBills", back_populates="user", uselist=False)


class Home(Base):
    __tablename__ = "homes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    nickname = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    cleaners_needed = Column(Integer, default=1, nullable=False)
    time_window_default = Column(String(20), default="anytime")
    # Preferred cleaner may complete jobs without before/after photos
    preferred_cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    owner = relationship("User", back_populates="homes", foreign_keys=[user_id])


class CleanerClient(Base):
    """A cleaner's ongoing relationship with a homeowner for one home"""

    __tablename__ = "cleaner_clients"

    id = Column(Integer, primary_key=True, index=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, inactive
    default_price = Column(Float, nullable=True)
    auto_pay_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    client = relationship("User", foreign_keys=[client_id])
    home = relationship("Home")


class RecurringSchedule(Base):
    __tablename__ = "recurring_schedules"

    id = Column(Integer, primary_key=True, index=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    cleaner_client_id = Column(Integer, ForeignKey("cleaner_clients.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False)

    frequency = Column(String(20), nullable=False)  # weekly, biweekly, monthly
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday ... 6=Saturday
    time_window = Column(String(20), default="anytime")
    price = Column(Float, nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_paused = Column(Boolean, default=False, nullable=False)
    paused_until = Column(Date, nullable=True)
    pause_reason = Column(Text, nullable=True)

    # Generation cursor: nothing is created on or before this date
    last_generated_date = Column(Date, nullable=True)
    next_scheduled_date = Column(Date, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    cleaner_client = relationship("CleanerClient")
    client = relationship("User", foreign_keys=[client_id])
    home = relationship("Home")
    appointments = relationship("Appointment", back_populates="recurring_schedule")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # Homeowner
    home_id = Column(Integer, ForeignKey("homes.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    price = Column(Float, nullable=False)
    original_price = Column(Float, nullable=True)
    discount_applied = Column(Boolean, default=False, nullable=False)
    time_window = Column(String(20), default="anytime")

    completed = Column(Boolean, default=False, nullable=False)
    paid = Column(Boolean, default=False, nullable=False)
    manually_paid = Column(Boolean, default=False, nullable=False)

    # in_progress -> submitted -> approved / auto_approved (or declined) ; completed
    completion_status = Column(String(20), default="in_progress", nullable=False)
    completion_submitted_at = Column(DateTime, nullable=True)
    auto_approval_expires_at = Column(DateTime, nullable=True)
    completion_approved_at = Column(DateTime, nullable=True)
    completion_approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    completion_checklist = Column(JSON, nullable=True)
    completion_notes = Column(Text, nullable=True)
    homeowner_feedback_required = Column(Boolean, default=False, nullable=False)

    # pending -> authorized -> captured / failed -> refunded / canceled
    payment_status = Column(String(20), default="pending", nullable=False)
    payment_hold_id = Column(String(255), nullable=True, index=True)
    payment_capture_failed = Column(Boolean, default=False, nullable=False)
    amount_paid_cents = Column(Integer, nullable=True)

    employees_assigned = Column(JSON, default=list)  # Cleaner user IDs, assignment order
    booked_by_cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    recurring_schedule_id = Column(
        Integer, ForeignKey("recurring_schedules.id"), nullable=True, index=True
    )

    was_cancelled = Column(Boolean, default=False, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    home = relationship("Home")
    recurring_schedule = relationship("RecurringSchedule", back_populates="appointments")
    cleaner_links = relationship(
        "CleanerAppointment", back_populates="appointment", cascade="all, delete-orphan"
    )
    photos = relationship("JobPhoto", back_populates="appointment", cascade="all, delete-orphan")

    @property
    def assigned_cleaner_ids(self) -> list[int]:
        return list(self.employees_assigned or [])

    @property
    def has_cleaner_assigned(self) -> bool:
        return len(self.assigned_cleaner_ids) > 0


class CleanerAppointment(Base):
    """Cleaner-assignment link between a cleaner and an appointment"""

    __tablename__ = "cleaner_appointments"
    __table_args__ = (UniqueConstraint("appointment_id", "employee_id"),)

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="cleaner_links")


class EmployeeJobAssignment(Base):
    """Job handed to a business employee by a cleaning business owner"""

    __tablename__ = "employee_job_assignments"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), default="assigned")
    created_at = Column(DateTime, server_default=func.now())


class JobPhoto(Base):
    __tablename__ = "job_photos"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    photo_type = Column(String(10), nullable=False)  # before, after
    photo_url = Column(String(500), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="photos")


class UserBills(Base):
    """Running per-user balance of amounts owed and paid"""

    __tablename__ = "user_bills"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    appointment_due = Column(Float, default=0.0, nullable=False)
    cancellation_fee = Column(Float, default=0.0, nullable=False)
    total_due = Column(Float, default=0.0, nullable=False)

    appointment_paid = Column(Float, default=0.0, nullable=False)
    cancellation_paid = Column(Float, default=0.0, nullable=False)
    total_paid = Column(Float, default=0.0, nullable=False)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="bill")
