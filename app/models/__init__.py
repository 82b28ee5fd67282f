# app/models/__init__.py
from .base import Base
from .business import Business, Staff
from .service import Service
from .availability import AvailabilityRule, AvailabilityException
from .appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES, TERMINAL_STATUSES
from .recurring import RecurringTemplate, RecurrenceFrequency
from .reminder import Reminder, ReminderType, ReminderStatus

__all__ = [
    "Base",
    "Business",
    "Staff",
    "Service",
    "AvailabilityRule",
    "AvailabilityException",
    "Appointment",
    "AppointmentStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "RecurringTemplate",
    "RecurrenceFrequency",
    "Reminder",
    "ReminderType",
    "ReminderStatus",
]
