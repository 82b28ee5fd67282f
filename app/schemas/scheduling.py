# app/schemas/scheduling.py
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import date, datetime, time
from uuid import UUID


# ============================================================================
# Availability
# ============================================================================

class AvailabilityRuleCreate(BaseModel):
    """Weekly opening window"""
    weekday: int = Field(..., description="Day of week (0=Sunday, 6=Saturday)", ge=0, le=6)
    start_time: time = Field(..., description="Window start (HH:MM, business timezone)")
    end_time: time = Field(..., description="Window end (HH:MM, business timezone)")
    staff_id: Optional[UUID] = Field(None, description="Staff member; null for business-wide")

    @field_validator("end_time")
    @classmethod
    def end_after_start(cls, v: time, info) -> time:
        start_time = info.data.get("start_time")
        if start_time and v <= start_time:
            raise ValueError("End time must be after start time")
        return v


class AvailabilityRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    staff_id: Optional[UUID] = None
    weekday: int
    start_time: time
    end_time: time
    is_active: bool


class AvailabilityExceptionUpsert(BaseModel):
    """Closure or custom hours for one date"""
    date: date
    is_closed: bool = Field(True, description="Closed all day")
    start_time: Optional[time] = Field(None, description="Override start when open")
    end_time: Optional[time] = Field(None, description="Override end when open")
    reason: Optional[str] = Field(None, max_length=500)
    staff_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_override_hours(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if not self.is_closed and self.start_time is None:
            raise ValueError("Open exceptions need override hours")
        return self


class AvailabilityExceptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    staff_id: Optional[UUID] = None
    date: date
    is_closed: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = None


class TimeWindow(BaseModel):
    start_time: time
    end_time: time


class EffectiveHoursResponse(BaseModel):
    date: date
    closed: bool
    windows: List[TimeWindow] = Field(default_factory=list)
    source: str


class SlotResponse(BaseModel):
    """Bookable start time, in the business timezone"""
    start_time: datetime
    end_time: datetime
    available: bool = True


class SlotsResponse(BaseModel):
    business_id: UUID
    service_id: UUID
    staff_id: Optional[UUID] = None
    date: date
    timezone: str
    slots: List[SlotResponse] = Field(default_factory=list)


# ============================================================================
# Appointments
# ============================================================================

class BookingRequest(BaseModel):
    """Customer booking request"""
    service_id: UUID
    staff_id: Optional[UUID] = None
    starts_at: datetime = Field(..., description="Requested start; naive values are UTC")
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field(..., min_length=3, max_length=20)
    customer_email: Optional[str] = None
    customer_locale: Optional[str] = Field(None, max_length=10)
    notes: Optional[str] = None
    deposit_cents: Optional[int] = Field(None, ge=0)
    source: Literal["public", "staff", "api"] = "public"
    enforce_hours: bool = Field(True, description="Staff bookings may ignore opening hours")


class RescheduleRequest(BaseModel):
    starts_at: datetime
    enforce_hours: bool = True


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    service_id: UUID
    staff_id: Optional[UUID] = None
    recurring_id: Optional[UUID] = None
    occurrence_date: Optional[date] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    status: str
    source: Optional[str] = None
    price_cents: Optional[int] = None
    deposit_cents: Optional[int] = None
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


# ============================================================================
# Recurring templates
# ============================================================================

Frequency = Literal["weekly", "bi-weekly", "monthly"]


class RecurringTemplateCreate(BaseModel):
    service_id: UUID
    staff_id: Optional[UUID] = None
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field(..., min_length=3, max_length=20)
    customer_email: Optional[str] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    time_of_day: time
    notes: Optional[str] = None

    @field_validator("end_date")
    @classmethod
    def end_not_before_start(cls, v: Optional[date], info) -> Optional[date]:
        start_date = info.data.get("start_date")
        if v and start_date and v < start_date:
            raise ValueError("End date cannot be before start date")
        return v


class RecurringTemplateUpdate(BaseModel):
    """Partial update; only fields that are sent are applied"""
    service_id: Optional[UUID] = None
    staff_id: Optional[UUID] = None
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_phone: Optional[str] = Field(None, min_length=3, max_length=20)
    customer_email: Optional[str] = None
    frequency: Optional[Frequency] = None
    end_date: Optional[date] = None
    time_of_day: Optional[time] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class ExpandRequest(BaseModel):
    template_id: Optional[UUID] = None
    horizon_days: Optional[int] = Field(None, ge=0, le=365)


class ExpansionResponse(BaseModel):
    template_id: str
    created: int
    created_ids: List[str] = Field(default_factory=list)
    skipped_existing: int = 0
    skipped_past: int = 0
    skipped_conflict: List[str] = Field(default_factory=list)


# ============================================================================
# Reminders
# ============================================================================

class CustomReminderCreate(BaseModel):
    scheduled_for: datetime
    message: Optional[str] = Field(None, max_length=1000)
    delivery_method: Optional[Literal["whatsapp", "sms", "email"]] = None


class ReminderStatusUpdate(BaseModel):
    status: Literal["sent", "failed"]
    error_message: Optional[str] = None


class ReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    appointment_id: UUID
    reminder_type: str
    scheduled_for: datetime
    status: str
    message_content: Optional[str] = None
    delivery_method: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
