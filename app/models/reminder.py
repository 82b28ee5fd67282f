# app/models/reminder.py
"""Appointment reminders handed to the external messaging dispatcher"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Uuid, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid
from app.models.base import Base


class ReminderType(str, enum.Enum):
    TWENTY_FOUR_HOUR = "24_hour"
    ONE_HOUR = "1_hour"
    CUSTOM = "custom"


class ReminderStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # appointment canceled or fire-time moved into the past


class Reminder(Base):
    __tablename__ = "appointment_reminders"
    __table_args__ = (
        UniqueConstraint("appointment_id", "reminder_type", name="uq_appointment_reminders_type"),
        Index("ix_appointment_reminders_due", "status", "scheduled_for"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id = Column(
        Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )

    reminder_type = Column(String(20), nullable=False)
    scheduled_for = Column(DateTime, nullable=False)  # naive UTC
    status = Column(String(20), nullable=False, default=ReminderStatus.PENDING.value)

    message_content = Column(Text, nullable=False)
    delivery_method = Column(String(20), default="sms")  # sms, whatsapp, email

    # hand-off claim; the reminder stays pending until the dispatcher reports
    dispatched_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="reminders")

    def __repr__(self):
        return f"<Reminder(id={self.id}, type={self.reminder_type}, status={self.status})>"
