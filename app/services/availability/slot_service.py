# app/services/availability/slot_service.py
"""
Slot generation.

generate_slots is the raw, stateless sequence of start times for a date;
it never looks at bookings. get_available_slots is the caller-side post
filter that drops past slots and marks each one against existing bookings.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional
from uuid import UUID
import logging

import pytz
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import InvalidInput
from app.models.business import Business
from app.services.availability.availability_service import AvailabilityService
from app.services.appointment.conflict_service import ConflictService, intervals_overlap
from app.services.business.business_service import BusinessService
from app.utils.time_utils import get_tz, localize, resolve_now, to_local, to_utc_naive

logger = logging.getLogger(__name__)


@dataclass
class SlotAvailability:
    start: datetime  # aware, business timezone
    end: datetime
    available: bool


class SlotService:
    """Turns effective hours into bookable start times"""

    @staticmethod
    def slots_in_window(
            window_start: datetime,
            window_end: datetime,
            duration_minutes: int,
            interval_minutes: int
    ) -> List[datetime]:
        """Every start t from window_start in interval steps with t + duration <= window_end"""
        duration = timedelta(minutes=duration_minutes)
        step = timedelta(minutes=interval_minutes)

        slots = []
        current = window_start
        while current + duration <= window_end:
            slots.append(current)
            current += step
        return slots

    @staticmethod
    def generate_slots(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            target_date: date,
            staff_id: Optional[UUID] = None,
            interval_minutes: Optional[int] = None
    ) -> List[datetime]:
        """
        Ordered start times for one date, as aware datetimes in the business
        timezone. Split shifts yield slots from each window; nothing is
        deduplicated or cached.
        """
        interval = interval_minutes if interval_minutes is not None else get_settings().SLOT_INTERVAL_MINUTES
        if interval <= 0:
            raise InvalidInput("Slot interval must be a positive number of minutes", {"interval_minutes": interval})

        business = BusinessService.get_business(db, business_id)
        service = BusinessService.get_service(db, business_id, service_id)
        BusinessService.get_staff(db, business_id, staff_id)

        hours = AvailabilityService.get_effective_hours(db, business_id, target_date, staff_id)
        if hours.closed:
            return []

        tz = get_tz(business.timezone)
        slots = []
        for window_start, window_end in hours.windows:
            # step in UTC so DST transitions keep real durations
            start_utc = localize(target_date, window_start, tz).astimezone(pytz.UTC)
            end_utc = localize(target_date, window_end, tz).astimezone(pytz.UTC)
            for slot in SlotService.slots_in_window(start_utc, end_utc, service.duration_minutes, interval):
                slots.append(to_local(slot, tz))

        slots.sort()
        return slots

    @staticmethod
    def get_available_slots(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            target_date: date,
            staff_id: Optional[UUID] = None,
            interval_minutes: Optional[int] = None,
            now: Optional[datetime] = None
    ) -> List[SlotAvailability]:
        """Future slots for the date, each marked against existing bookings"""
        slots = SlotService.generate_slots(db, business_id, service_id, target_date, staff_id, interval_minutes)
        if not slots:
            return []

        service = BusinessService.get_service(db, business_id, service_id)
        current = resolve_now(now)
        duration = timedelta(minutes=service.duration_minutes)

        # One query for the whole day, padded by the widest interval any slot checks
        range_start, _ = ConflictService.padded_interval(service, to_utc_naive(slots[0]), to_utc_naive(slots[0]))
        _, range_end = ConflictService.padded_interval(
            service, to_utc_naive(slots[-1]), to_utc_naive(slots[-1]) + duration
        )
        booked = ConflictService.find_conflicts(db, business_id, staff_id, range_start, range_end)

        result = []
        for slot in slots:
            start = to_utc_naive(slot)
            if start <= current:
                continue
            end = start + duration
            padded_start, padded_end = ConflictService.padded_interval(service, start, end)
            overlapping = [
                appt for appt in booked
                if intervals_overlap(padded_start, padded_end, appt.starts_at, appt.ends_at)
            ]
            result.append(SlotAvailability(
                start=slot,
                end=slot + duration,
                available=ConflictService.fits_capacity(service, overlapping)
            ))

        return result

    @staticmethod
    def fits_business_hours(
            db: Session,
            business: Business,
            staff_id: Optional[UUID],
            start: datetime,
            end: datetime
    ) -> bool:
        """True when [start, end) lies inside one effective window of its local date"""
        tz = get_tz(business.timezone)
        local_start = to_local(to_utc_naive(start), tz)
        local_date = local_start.date()

        hours = AvailabilityService.get_effective_hours(db, business.id, local_date, staff_id)
        if hours.closed:
            return False

        start = to_utc_naive(start)
        end = to_utc_naive(end)
        for window_start, window_end in hours.windows:
            window_start_utc = to_utc_naive(localize(local_date, window_start, tz))
            window_end_utc = to_utc_naive(localize(local_date, window_end, tz))
            if window_start_utc <= start and end <= window_end_utc:
                return True
        return False
