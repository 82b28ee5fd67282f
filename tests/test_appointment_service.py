"""
Tests for services/appointment/appointment_service.py

Booking, rescheduling and status transitions, including the reminder
cascade, storage errors, and the calendar invariant across a sequence of
operations and across concurrent writers.
"""
import threading
import time
import uuid
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import (
    InvalidInput, InvalidState, NotFound, PersistenceFailure, SchedulingError, SlotUnavailable
)
from app.models import Base
from app.models.appointment import Appointment, ACTIVE_STATUSES
from app.models.business import Business
from app.models.reminder import Reminder
from app.services.appointment.appointment_service import AppointmentService
from app.services.appointment.conflict_service import ConflictService, intervals_overlap
from app.services.locking.lock_service import LockService
from app.services.reminder.reminder_service import ReminderService
from tests.conftest import BEFORE_MONDAY, at


def book(db, business, service, start, staff=None, **kwargs):
    kwargs.setdefault("now", BEFORE_MONDAY)
    return AppointmentService.create(
        db,
        business_id=business.id,
        service_id=service.id,
        starts_at=start,
        customer_name=kwargs.pop("customer_name", "Maria Rivera"),
        customer_phone=kwargs.pop("customer_phone", "+17875551234"),
        staff_id=staff.id if staff else None,
        **kwargs
    )


def reminder_statuses(db, appointment):
    reminders = db.query(Reminder).filter(Reminder.appointment_id == appointment.id).all()
    return {r.reminder_type: r.status for r in reminders}


class TestCreate:

    def test_create_confirmed_with_reminders(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))

        assert appointment.status == "confirmed"
        assert appointment.starts_at == at(10)
        assert appointment.ends_at == at(11)
        assert appointment.source == "public"
        assert appointment.price_cents == 2500
        assert reminder_statuses(db, appointment) == {"24_hour": "pending", "1_hour": "pending"}

    def test_deposit_makes_booking_pending(self, db, business, make_service, monday_hours):
        service = make_service(business, deposit_cents=1000)

        appointment = book(db, business, service, at(10))

        assert appointment.status == "pending"
        assert appointment.deposit_cents == 1000

    def test_explicit_zero_deposit_confirms(self, db, business, make_service, monday_hours):
        service = make_service(business, deposit_cents=1000)

        appointment = book(db, business, service, at(10), deposit_cents=0)

        assert appointment.status == "confirmed"

    def test_negative_deposit(self, db, business, service, monday_hours):
        with pytest.raises(InvalidInput):
            book(db, business, service, at(10), deposit_cents=-1)

    def test_start_in_the_past(self, db, business, service, monday_hours):
        with pytest.raises(InvalidInput):
            book(db, business, service, at(10), now=at(10, 30))

    @pytest.mark.parametrize("field", ["customer_name", "customer_phone"])
    def test_customer_fields_required(self, db, business, service, monday_hours, field):
        with pytest.raises(InvalidInput):
            book(db, business, service, at(10), **{field: "  "})

    def test_unknown_service(self, db, business, monday_hours):
        class Missing:
            id = uuid.uuid4()

        with pytest.raises(NotFound):
            book(db, business, Missing, at(10))

    def test_staff_of_other_business(self, db, business, service, make_business, make_staff, monday_hours):
        foreign = make_staff(make_business(name="Other"))

        with pytest.raises(NotFound):
            book(db, business, service, at(10), staff=foreign)

    def test_outside_business_hours(self, db, business, service, monday_hours):
        with pytest.raises(SlotUnavailable):
            book(db, business, service, at(16, 30))

        assert db.query(Appointment).count() == 0

    def test_staff_booking_may_ignore_hours(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(18), enforce_hours=False, source="staff")

        assert appointment.source == "staff"

    def test_window_boundary(self, db, business, service, monday_hours):
        assert book(db, business, service, at(16)).ends_at == at(17)

        with pytest.raises(SlotUnavailable):
            book(db, business, service, at(16, 1), customer_phone="+17875550000")

    def test_overlap_rejected_touching_accepted(self, db, business, service, make_staff, monday_hours):
        staff = make_staff(business)
        book(db, business, service, at(10), staff=staff)

        with pytest.raises(SlotUnavailable):
            book(db, business, service, at(10, 30), staff=staff)

        accepted = book(db, business, service, at(11), staff=staff)
        assert accepted.status == "confirmed"

    def test_failed_booking_leaves_no_reminders(self, db, business, service, monday_hours):
        book(db, business, service, at(10))

        with pytest.raises(SlotUnavailable):
            book(db, business, service, at(10))

        assert db.query(Appointment).count() == 1
        assert db.query(Reminder).count() == 2

    def test_aware_start_is_stored_as_utc(self, db, make_business, make_service, make_rule):
        import pytz

        business = make_business(timezone="America/Puerto_Rico")
        service = make_service(business)
        make_rule(business)
        start = pytz.timezone("America/Puerto_Rico").localize(datetime(2024, 1, 1, 9, 0))

        appointment = book(db, business, service, start)

        assert appointment.starts_at == at(13)

    def test_counters_refreshed_after_booking(self, db, business, service, make_staff, monday_hours):
        make_staff(business)

        book(db, business, service, at(10))

        refreshed = db.query(Business).filter(Business.id == business.id).one()
        assert refreshed.monthly_bookings_count == 1
        assert refreshed.staff_count == 1


class TestReschedule:

    def test_move_over_own_slot(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))

        moved = AppointmentService.reschedule(db, appointment.id, at(10, 30), now=BEFORE_MONDAY)

        assert moved.starts_at == at(10, 30)
        assert moved.ends_at == at(11, 30)
        assert moved.status == "confirmed"

    def test_move_into_taken_slot(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))
        book(db, business, service, at(13), customer_phone="+17875550000")

        with pytest.raises(SlotUnavailable):
            AppointmentService.reschedule(db, appointment.id, at(12, 30), now=BEFORE_MONDAY)

        assert AppointmentService.get_appointment(db, appointment.id).starts_at == at(10)

    def test_canceled_cannot_be_rescheduled(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))
        AppointmentService.cancel(db, appointment.id, now=BEFORE_MONDAY)

        with pytest.raises(InvalidState):
            AppointmentService.reschedule(db, appointment.id, at(12), now=BEFORE_MONDAY)

    def test_wrong_business_scope(self, db, business, service, make_business, monday_hours):
        appointment = book(db, business, service, at(10))
        other = make_business(name="Other")

        with pytest.raises(NotFound):
            AppointmentService.reschedule(db, appointment.id, at(12), business_id=other.id, now=BEFORE_MONDAY)

    def test_reminders_follow_new_start(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))

        AppointmentService.reschedule(db, appointment.id, at(14), now=BEFORE_MONDAY)

        reminders = {
            r.reminder_type: r
            for r in db.query(Reminder).filter(Reminder.appointment_id == appointment.id).all()
        }
        assert reminders["24_hour"].scheduled_for == datetime(2023, 12, 31, 14, 0)
        assert reminders["1_hour"].scheduled_for == at(13)
        assert reminders["1_hour"].status == "pending"


class TestTransitions:

    def test_cancel_is_idempotent(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))
        first_cancel = datetime(2023, 12, 30, 12, 0)

        AppointmentService.cancel(db, appointment.id, reason="sick", now=first_cancel)
        again = AppointmentService.cancel(db, appointment.id, reason="other", now=datetime(2023, 12, 31))

        assert again.status == "canceled"
        assert again.cancelled_at == first_cancel
        assert again.cancellation_reason == "sick"

    def test_cancel_skips_pending_reminders(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))

        AppointmentService.cancel(db, appointment.id, now=BEFORE_MONDAY)

        assert reminder_statuses(db, appointment) == {"24_hour": "skipped", "1_hour": "skipped"}

    def test_cancel_frees_the_slot(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))
        AppointmentService.cancel(db, appointment.id, now=BEFORE_MONDAY)

        assert book(db, business, service, at(10)).status == "confirmed"

    def test_completed_cannot_be_canceled(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))
        AppointmentService.complete(db, appointment.id, now=at(11))

        with pytest.raises(InvalidState):
            AppointmentService.cancel(db, appointment.id, now=at(12))

    def test_confirm_pending(self, db, business, make_service, monday_hours):
        service = make_service(business, deposit_cents=500)
        appointment = book(db, business, service, at(10))

        confirmed = AppointmentService.confirm(db, appointment.id, now=BEFORE_MONDAY)

        assert confirmed.status == "confirmed"
        assert reminder_statuses(db, appointment) == {"24_hour": "pending", "1_hour": "pending"}

    def test_confirm_canceled(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))
        AppointmentService.cancel(db, appointment.id, now=BEFORE_MONDAY)

        with pytest.raises(InvalidState):
            AppointmentService.confirm(db, appointment.id)

    def test_no_show(self, db, business, service, monday_hours):
        appointment = book(db, business, service, at(10))

        assert AppointmentService.mark_no_show(db, appointment.id, now=at(11)).status == "no_show"

    def test_missing_appointment(self, db):
        with pytest.raises(NotFound):
            AppointmentService.cancel(db, uuid.uuid4())


class TestCalendarInvariant:

    def test_no_active_overlaps_after_mixed_operations(self, db, business, service, make_staff, monday_hours):
        staff = make_staff(business)
        starts = [at(9), at(9, 30), at(10), at(11), at(11, 15), at(13), at(15, 45), at(16)]

        booked = []
        for start in starts:
            try:
                booked.append(book(db, business, service, start, staff=staff))
            except SlotUnavailable:
                pass

        AppointmentService.cancel(db, booked[0].id, now=BEFORE_MONDAY)
        for appointment, target in zip(booked[1:], [at(9, 30), at(12), at(13, 30)]):
            try:
                AppointmentService.reschedule(db, appointment.id, target, now=BEFORE_MONDAY)
            except SlotUnavailable:
                pass

        active = db.query(Appointment).filter(
            Appointment.staff_id == staff.id,
            Appointment.status.in_(ACTIVE_STATUSES)
        ).all()
        for i, first in enumerate(active):
            for second in active[i + 1:]:
                assert not intervals_overlap(first.starts_at, first.ends_at, second.starts_at, second.ends_at)


def locked(statement):
    return OperationalError(statement, {}, Exception("database is locked"))


class TestStorageErrors:

    def test_flush_error_is_a_persistence_failure(self, db, business, service, monday_hours, monkeypatch):
        def flush(*args, **kwargs):
            raise locked("INSERT INTO appointments")

        monkeypatch.setattr(db, "flush", flush)

        with pytest.raises(PersistenceFailure) as exc_info:
            book(db, business, service, at(10))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        monkeypatch.undo()
        assert db.query(Appointment).count() == 0

    def test_reminder_write_error_rolls_back_the_booking(self, db, business, service, monday_hours, monkeypatch):
        def broken(db, appointment, now=None, commit=True):
            raise locked("INSERT INTO appointment_reminders")

        monkeypatch.setattr(ReminderService, "schedule_standard_reminders", staticmethod(broken))

        with pytest.raises(PersistenceFailure):
            book(db, business, service, at(10))

        assert db.query(Appointment).count() == 0

    def test_failed_reschedule_keeps_the_old_time(self, db, business, service, monday_hours, monkeypatch):
        appointment = book(db, business, service, at(10))

        def broken(db, appointment, previous_starts_at, now=None):
            raise locked("UPDATE appointment_reminders")

        monkeypatch.setattr(ReminderService, "reschedule_reminders", staticmethod(broken))

        with pytest.raises(PersistenceFailure):
            AppointmentService.reschedule(db, appointment.id, at(14), now=BEFORE_MONDAY)

        db.refresh(appointment)
        assert appointment.starts_at == at(10)


class TestConcurrentBooking:
    """Two sessions on a file database racing for the same interval"""

    @pytest.fixture
    def engine(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'calendar.db'}",
            connect_args={"check_same_thread": False, "timeout": 5},
        )
        Base.metadata.create_all(bind=engine)
        yield engine
        engine.dispose()

    def race(self, first_sessions, second_sessions, business, service, monkeypatch):
        """
        The first writer passes its conflict check and then holds off until
        the second writer is about to lock the same calendar.
        """
        business_id, service_id = business.id, service.id
        first_checked = threading.Event()
        second_locking = threading.Event()
        original_free = ConflictService.is_interval_free
        original_lock = LockService.lock_calendar

        def free_then_wait(*args, **kwargs):
            free = original_free(*args, **kwargs)
            if threading.current_thread().name == "first":
                first_checked.set()
                second_locking.wait(timeout=5)
                time.sleep(0.3)
            return free

        def lock_calendar(db, business_id, staff_id):
            if threading.current_thread().name == "second":
                second_locking.set()
            return original_lock(db, business_id, staff_id)

        monkeypatch.setattr(ConflictService, "is_interval_free", staticmethod(free_then_wait))
        monkeypatch.setattr(LockService, "lock_calendar", staticmethod(lock_calendar))

        outcomes = {}

        def attempt(sessions, phone):
            name = threading.current_thread().name
            if name == "second":
                first_checked.wait(timeout=5)
            session = sessions()
            try:
                AppointmentService.create(
                    session, business_id, service_id, at(10), "Maria Rivera", phone, now=BEFORE_MONDAY
                )
                outcomes[name] = "booked"
            except SchedulingError as e:
                outcomes[name] = type(e).__name__
            finally:
                session.close()

        threads = [
            threading.Thread(target=attempt, name="first", args=(first_sessions, "+17875551234")),
            threading.Thread(target=attempt, name="second", args=(second_sessions, "+17875550000")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=15)
        return outcomes

    def active_at_ten(self, sessions):
        session = sessions()
        try:
            return session.query(Appointment).filter(
                Appointment.starts_at == at(10),
                Appointment.status.in_(ACTIVE_STATUSES)
            ).count()
        finally:
            session.close()

    def test_second_writer_sees_the_first_booking(self, engine, session_factory, business, service,
                                                  monday_hours, monkeypatch):
        outcomes = self.race(session_factory, session_factory, business, service, monkeypatch)

        assert outcomes == {"first": "booked", "second": "SlotUnavailable"}
        assert self.active_at_ten(session_factory) == 1

    def test_writer_that_cannot_lock_is_a_persistence_failure(self, engine, session_factory, business, service,
                                                              monday_hours, monkeypatch):
        impatient = create_engine(engine.url, connect_args={"check_same_thread": False, "timeout": 0.05})
        try:
            outcomes = self.race(
                session_factory, sessionmaker(autoflush=False, bind=impatient), business, service, monkeypatch
            )
        finally:
            impatient.dispose()

        assert outcomes == {"first": "booked", "second": "PersistenceFailure"}
        assert self.active_at_ten(session_factory) == 1
