# app/models/business.py
"""
Business and Staff Models
Read-only collaborators of the scheduling core, plus the aggregate counters
that are recomputed after bookings.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from app.models.base import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, nullable=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=True, unique=True)

    # System configuration
    timezone = Column(String(50), default="UTC")
    messaging_mode = Column(String(20), default="manual")  # manual, wa_cloud, twilio

    # Materialized aggregates, recomputed by BusinessStatsService
    staff_count = Column(Integer, default=0, nullable=False)
    monthly_bookings_count = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    staff = relationship("Staff", back_populates="business")

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name})>"


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(
        Uuid,
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    display_name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), default="member")  # member, admin
    is_active = Column(Boolean, default=True)

    business = relationship("Business", back_populates="staff")

    def __repr__(self):
        return f"<Staff(id={self.id}, display_name={self.display_name})>"
