# app/schemas/__init__.py
from .task_payloads import (
    ExpandRecurringPayload,
    ReminderDispatchPayload
)

from .scheduling import (
    AvailabilityRuleCreate,
    AvailabilityRuleResponse,
    AvailabilityExceptionUpsert,
    AvailabilityExceptionResponse,
    TimeWindow,
    EffectiveHoursResponse,
    SlotResponse,
    SlotsResponse,
    BookingRequest,
    RescheduleRequest,
    CancelRequest,
    AppointmentResponse,
    RecurringTemplateCreate,
    RecurringTemplateUpdate,
    ExpandRequest,
    ExpansionResponse,
    CustomReminderCreate,
    ReminderStatusUpdate,
    ReminderResponse
)
