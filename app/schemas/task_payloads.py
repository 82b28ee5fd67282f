from __future__ import annotations
# app/schemas/task_payloads.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


class ExpandRecurringPayload(BaseModel):
    """Payload for the recurrence expansion task"""
    business_id: Optional[str] = Field(None, description="Limit expansion to one business")
    template_id: Optional[str] = Field(None, description="Expand a single template")
    horizon_days: Optional[int] = Field(None, ge=0, description="Days ahead to materialize")


class ReminderDispatchPayload(BaseModel):
    """Message handed to the external messaging dispatcher"""
    reminder_id: str = Field(..., description="Reminder to deliver")
    appointment_id: str = Field(..., description="Owning appointment")
    business_id: str = Field(..., description="Business identifier")
    to_phone: str = Field(..., description="Customer phone number")
    customer_name: str = Field(..., description="Customer name")
    channel: str = Field(..., description="whatsapp, sms or email")
    message_body: str = Field(..., description="Rendered reminder text")
    reminder_type: str = Field(..., description="24_hour, 1_hour or custom")
    scheduled_for: datetime = Field(..., description="Fire time (UTC)")
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
