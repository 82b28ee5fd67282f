# ===== app/models/availability.py =====
from sqlalchemy import (
    Column, String, Integer, Boolean, Time, Date, DateTime, ForeignKey, Uuid,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class AvailabilityRule(Base):
    """Weekly opening hours, business-wide (staff_id NULL) or per staff member"""
    __tablename__ = "availability_rules"
    __table_args__ = (
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_availability_rules_weekday"),
        CheckConstraint("start_time < end_time", name="ck_availability_rules_interval"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(Uuid, ForeignKey("staff.id", ondelete="CASCADE"), nullable=True, index=True)

    weekday = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AvailabilityException(Base):
    """Specific date overrides (holidays, time-off, special hours)"""
    __tablename__ = "availability_exceptions"
    __table_args__ = (
        UniqueConstraint("business_id", "staff_id", "date", name="uq_availability_exceptions_scope_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(Uuid, ForeignKey("staff.id", ondelete="CASCADE"), nullable=True)

    date = Column(Date, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)  # True = day off
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def has_override_hours(self) -> bool:
        return self.start_time is not None and self.end_time is not None
