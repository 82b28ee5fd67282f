# app/services/appointment/calendar_export_service.py
"""
iCalendar (RFC 5545) export of a single appointment.

Instants come straight from the stored naive-UTC columns, so the event is
written in UTC and the customer's calendar app shows it in local time.
Alarms mirror the standard reminder offsets.
"""
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.models.appointment import Appointment, AppointmentStatus
from app.models.reminder import ReminderType
from app.services.appointment.appointment_service import AppointmentService
from app.services.reminder.reminder_service import STANDARD_REMINDERS
from app.utils.time_utils import resolve_now

logger = logging.getLogger(__name__)

ALARM_LABELS = {
    ReminderType.TWENTY_FOUR_HOUR.value: "tomorrow",
    ReminderType.ONE_HOUR.value: "in 1 hour",
}

ICS_STATUS = {
    AppointmentStatus.PENDING.value: "TENTATIVE",
    AppointmentStatus.CANCELED.value: "CANCELLED",
}


def format_utc_timestamp(value: datetime) -> str:
    """Naive UTC datetime -> 20240101T140000Z"""
    return value.strftime("%Y%m%dT%H%M%SZ")


def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def alarm_trigger(offset: timedelta) -> str:
    """timedelta(hours=24) -> -PT24H"""
    minutes = int(offset.total_seconds() // 60)
    if minutes % 60 == 0:
        return f"-PT{minutes // 60}H"
    return f"-PT{minutes}M"


class CalendarExportService:
    """Renders appointments as .ics files"""

    @staticmethod
    def build_ics(appointment: Appointment, now: Optional[datetime] = None) -> str:
        settings = get_settings()
        service_name = appointment.service.name if appointment.service else "Appointment"
        business_name = appointment.business.name if appointment.business else ""

        description = f"Appointment for {service_name}"
        if appointment.service is not None and appointment.service.description:
            description += f"\n\n{appointment.service.description}"
        description += f"\n\nCustomer: {appointment.customer_name}"

        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:-//{settings.APP_NAME}//Appointment//EN",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
            "BEGIN:VEVENT",
            f"UID:appointment-{appointment.id}@{settings.CALENDAR_UID_DOMAIN}",
            f"DTSTAMP:{format_utc_timestamp(resolve_now(now))}",
            f"DTSTART:{format_utc_timestamp(appointment.starts_at)}",
            f"DTEND:{format_utc_timestamp(appointment.ends_at)}",
            f"SUMMARY:{escape_ical_text(f'{service_name} - {business_name}' if business_name else service_name)}",
            f"DESCRIPTION:{escape_ical_text(description)}",
            f"LOCATION:{escape_ical_text(business_name)}",
            f"STATUS:{ICS_STATUS.get(appointment.status, 'CONFIRMED')}",
            "SEQUENCE:0",
        ]

        if appointment.is_active:
            for reminder_type, offset in STANDARD_REMINDERS:
                label = ALARM_LABELS.get(reminder_type, "soon")
                lines += [
                    "BEGIN:VALARM",
                    f"TRIGGER:{alarm_trigger(offset)}",
                    "ACTION:DISPLAY",
                    f"DESCRIPTION:{escape_ical_text(f'Reminder: {service_name} appointment {label}')}",
                    "END:VALARM",
                ]

        lines += ["END:VEVENT", "END:VCALENDAR"]
        return "\r\n".join(lines) + "\r\n"

    @staticmethod
    def export_appointment(
            db: Session,
            business_id: UUID,
            appointment_id: UUID,
            now: Optional[datetime] = None
    ) -> str:
        """NotFound when the appointment is missing or belongs to another business"""
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        logger.info(f"Exporting appointment {appointment.id} as iCalendar")
        return CalendarExportService.build_ics(appointment, now)
