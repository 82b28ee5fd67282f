# app/models/recurring.py
"""
Recurring appointment templates.
Generated appointments point back through Appointment.recurring_id.
"""
from sqlalchemy import (
    Column, String, Integer, Text, Boolean, Date, Time, DateTime, ForeignKey, Uuid, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid
from app.models.base import Base


class RecurrenceFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"


class RecurringTemplate(Base):
    __tablename__ = "recurring_appointments"
    __table_args__ = (
        CheckConstraint(
            "frequency IN ('weekly', 'bi-weekly', 'monthly')", name="ck_recurring_frequency"
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date", name="ck_recurring_date_range"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False)
    staff_id = Column(Uuid, ForeignKey("staff.id"), nullable=True)

    # Customer info
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)

    # Pattern
    frequency = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    time_of_day = Column(Time, nullable=False)  # business-local wall clock
    duration_minutes = Column(Integer, nullable=False)  # snapshot of the service at creation

    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_expanded_at = Column(DateTime, nullable=True)

    service = relationship("Service")
    business = relationship("Business")

    def __repr__(self):
        return f"<RecurringTemplate(id={self.id}, frequency={self.frequency}, is_active={self.is_active})>"
