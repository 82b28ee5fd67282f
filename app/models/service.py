# app/models/service.py
"""
Service Model - Bookable service definitions
Each service belongs to one business and carries the duration, buffers and
capacity the scheduling engine works with.
"""
from sqlalchemy import Column, String, Integer, ForeignKey, Boolean, DateTime, Text, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from app.models.base import Base


class Service(Base):
    """
    Source of truth for duration/buffers/price of a bookable service.
    Changing duration_minutes does not touch appointments already booked.
    """
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
        CheckConstraint("max_per_slot >= 1", name="ck_services_max_per_slot"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(
        Uuid,
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Timing
    duration_minutes = Column(Integer, nullable=False)
    buffer_before_minutes = Column(Integer, default=0, nullable=False)
    buffer_after_minutes = Column(Integer, default=0, nullable=False)

    # Concurrent bookings allowed in the same slot (group classes)
    max_per_slot = Column(Integer, default=1, nullable=False)

    # Amounts in cents
    price_cents = Column(Integer, default=0, nullable=False)
    deposit_cents = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    business = relationship("Business")

    def __repr__(self):
        return f"<Service(id={self.id}, name={self.name}, business_id={self.business_id})>"

    @property
    def formatted_duration(self) -> str:
        """Return human-readable duration string"""
        hours = self.duration_minutes // 60
        minutes = self.duration_minutes % 60

        if hours > 0 and minutes > 0:
            return f"{hours}h {minutes}m"
        elif hours > 0:
            return f"{hours}h"
        else:
            return f"{minutes}m"
