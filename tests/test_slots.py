"""
Tests for services/availability/slot_service.py

Raw slot generation for a date and the booking-aware availability view.
"""
from datetime import date, datetime, time, timedelta

import pytest

from app.core.exceptions import InvalidInput, NotFound
from app.services.availability.availability_service import AvailabilityService
from app.services.availability.slot_service import SlotService
from tests.conftest import MONDAY_DATE, at


def hhmm(slots):
    return [s.strftime("%H:%M") for s in slots]


class TestGenerateSlots:

    def test_monday_hours_hourly_service(self, db, business, service, monday_hours):
        """Open 09:00-17:00, 60 min service, 30 min interval"""
        slots = SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE, interval_minutes=30)

        expected = []
        current = datetime(2024, 1, 1, 9, 0)
        while current <= datetime(2024, 1, 1, 16, 0):
            expected.append(current.strftime("%H:%M"))
            current += timedelta(minutes=30)

        assert hhmm(slots) == expected
        assert len(slots) == 15
        assert "16:30" not in hhmm(slots)

    def test_every_slot_fits_its_window(self, db, business, make_service, make_rule):
        service = make_service(business, duration_minutes=45)
        make_rule(business, start=time(9, 0), end=time(12, 10))
        make_rule(business, start=time(13, 0), end=time(17, 0))

        slots = SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE, interval_minutes=20)
        windows = AvailabilityService.get_effective_hours(db, business.id, MONDAY_DATE).windows

        for slot in slots:
            end = (slot + timedelta(minutes=45)).time()
            assert any(start <= slot.time() and end <= stop for start, stop in windows)

    def test_split_shift(self, db, business, service, make_rule):
        make_rule(business, start=time(9, 0), end=time(11, 0))
        make_rule(business, start=time(13, 0), end=time(15, 0))

        slots = SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE, interval_minutes=30)

        assert hhmm(slots) == ["09:00", "09:30", "10:00", "13:00", "13:30", "14:00"]

    def test_closed_exception_gives_no_slots(self, db, business, service, monday_hours):
        AvailabilityService.upsert_exception(db, business.id, MONDAY_DATE, is_closed=True)

        assert SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE) == []

    def test_day_without_rules_gives_no_slots(self, db, business, service, monday_hours):
        assert SlotService.generate_slots(db, business.id, service.id, date(2024, 1, 2)) == []

    def test_slots_are_local_to_business_timezone(self, db, make_business, make_service, make_rule):
        business = make_business(timezone="America/Puerto_Rico")
        service = make_service(business)
        make_rule(business)

        slots = SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE, interval_minutes=60)

        assert slots[0].hour == 9
        assert slots[0].utcoffset() == timedelta(hours=-4)
        assert slots[-1].hour == 16

    def test_default_interval_from_settings(self, db, business, service, monday_hours):
        slots = SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE)

        assert slots[1] - slots[0] == timedelta(minutes=30)

    @pytest.mark.parametrize("interval", [0, -15])
    def test_rejects_non_positive_interval(self, db, business, service, monday_hours, interval):
        with pytest.raises(InvalidInput):
            SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE, interval_minutes=interval)

    def test_inactive_service(self, db, business, make_service, monday_hours):
        service = make_service(business, is_active=False)

        with pytest.raises(InvalidInput):
            SlotService.generate_slots(db, business.id, service.id, MONDAY_DATE)

    def test_service_of_other_business(self, db, business, make_business, make_service, monday_hours):
        foreign = make_service(make_business(name="Other"))

        with pytest.raises(NotFound):
            SlotService.generate_slots(db, business.id, foreign.id, MONDAY_DATE)


class TestAvailableSlots:

    def test_past_slots_are_dropped(self, db, business, service, monday_hours):
        slots = SlotService.get_available_slots(
            db, business.id, service.id, MONDAY_DATE, interval_minutes=30, now=at(12, 10)
        )

        assert slots[0].start.strftime("%H:%M") == "12:30"

    def test_booked_slots_are_marked(self, db, business, service, monday_hours, make_appointment):
        make_appointment(business, service, at(10, 0))

        slots = SlotService.get_available_slots(
            db, business.id, service.id, MONDAY_DATE, interval_minutes=30, now=datetime(2023, 12, 31)
        )
        availability = {s.start.strftime("%H:%M"): s.available for s in slots}

        assert availability["09:00"] is True
        assert availability["09:30"] is False
        assert availability["10:00"] is False
        assert availability["10:30"] is False
        assert availability["11:00"] is True

    def test_canceled_booking_frees_slot(self, db, business, service, monday_hours, make_appointment):
        make_appointment(business, service, at(10, 0), status="canceled")

        slots = SlotService.get_available_slots(
            db, business.id, service.id, MONDAY_DATE, interval_minutes=30, now=datetime(2023, 12, 31)
        )

        assert all(s.available for s in slots)

    def test_buffers_widen_the_check(self, db, business, make_service, monday_hours, make_appointment):
        service = make_service(business, buffer_after_minutes=30)
        make_appointment(business, service, at(10, 0))

        slots = SlotService.get_available_slots(
            db, business.id, service.id, MONDAY_DATE, interval_minutes=30, now=datetime(2023, 12, 31)
        )
        availability = {s.start.strftime("%H:%M"): s.available for s in slots}

        # 09:00-10:00 plus 30 min after-buffer runs into the 10:00 booking
        assert availability["09:00"] is False
        assert availability["11:00"] is True


class TestBusinessHoursFit:

    def test_booking_exactly_filling_window_is_accepted(self, db, business, monday_hours):
        assert SlotService.fits_business_hours(db, business, None, at(16, 0), at(17, 0)) is True

    def test_one_minute_past_window_is_rejected(self, db, business, monday_hours):
        assert SlotService.fits_business_hours(db, business, None, at(16, 1), at(17, 1)) is False

    def test_interval_spanning_a_split_shift_gap(self, db, business, make_rule):
        make_rule(business, start=time(9, 0), end=time(12, 0))
        make_rule(business, start=time(13, 0), end=time(17, 0))

        assert SlotService.fits_business_hours(db, business, None, at(11, 30), at(13, 30)) is False
