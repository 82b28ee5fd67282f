# ===== app/models/appointment.py =====
from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime, ForeignKey, Uuid, Index,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import Base
import enum
import uuid


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that hold a slot on the calendar
ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)

# Statuses no scheduling operation may leave
TERMINAL_STATUSES = (
    AppointmentStatus.CANCELED.value,
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.NO_SHOW.value,
)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("starts_at < ends_at", name="ck_appointments_interval"),
        # Idempotent recurrence expansion: one instance per template occurrence
        UniqueConstraint("recurring_id", "occurrence_date", name="uq_appointments_recurring_occurrence"),
        Index("ix_appointments_calendar", "business_id", "staff_id", "starts_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # References
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False)
    staff_id = Column(Uuid, ForeignKey("staff.id"), nullable=True)

    # Weak back-reference: never owns the appointment's lifecycle
    recurring_id = Column(
        Uuid, ForeignKey("recurring_appointments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    occurrence_date = Column(Date, nullable=True)  # template-local date this instance was expanded for

    # Customer info
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)
    customer_locale = Column(String(10), default="es-PR")

    # Interval, naive UTC, half-open [starts_at, ends_at)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)

    status = Column(String(20), nullable=False, default=AppointmentStatus.CONFIRMED.value, index=True)
    source = Column(String(20), default="public")  # public, staff, recurring, api

    # Amounts in cents
    price_cents = Column(Integer, default=0)
    deposit_cents = Column(Integer, default=0)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    service = relationship("Service")
    business = relationship("Business")
    reminders = relationship(
        "Reminder",
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def duration_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() // 60)

    def __repr__(self):
        return f"<Appointment(id={self.id}, starts_at={self.starts_at}, status={self.status})>"
