"""
Tests for services/recurring/recurring_service.py

Occurrence arithmetic, idempotent expansion, and series lifecycle.
"""
from datetime import date, datetime, time

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import InvalidInput, NotFound, PersistenceFailure
from app.models.appointment import Appointment
from app.models.recurring import RecurringTemplate
from app.models.reminder import Reminder
from app.services.recurring.recurring_service import (
    RecurringService, nth_occurrence, occurrence_dates
)

NOW = datetime(2024, 1, 1, 8, 0)


def template_for(frequency, start_date, end_date=None):
    """Unsaved template, enough for occurrence arithmetic"""
    return RecurringTemplate(frequency=frequency, start_date=start_date, end_date=end_date, time_of_day=time(14, 0))


def create(db, business, service, frequency="weekly", staff=None, **kwargs):
    kwargs.setdefault("start_date", date(2024, 1, 1))
    kwargs.setdefault("time_of_day", time(14, 0))
    kwargs.setdefault("expand", False)
    template, _ = RecurringService.create_template(
        db,
        business_id=business.id,
        service_id=service.id,
        customer_name="Carmen Ortiz",
        customer_phone="+17875559876",
        frequency=frequency,
        staff_id=staff.id if staff else None,
        now=NOW,
        **kwargs
    )
    return template


def series(db, template):
    return db.query(Appointment).filter(
        Appointment.recurring_id == template.id
    ).order_by(Appointment.starts_at.asc()).all()


class TestOccurrences:

    def test_weekly(self):
        template = template_for("weekly", date(2024, 1, 1))

        assert occurrence_dates(template, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)
        ]

    def test_bi_weekly(self):
        template = template_for("bi-weekly", date(2024, 1, 1))

        assert occurrence_dates(template, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)
        ]

    def test_monthly_clamps_to_month_end(self):
        template = template_for("monthly", date(2024, 1, 31))

        assert nth_occurrence(template, 1) == date(2024, 2, 29)
        assert nth_occurrence(template, 2) == date(2024, 3, 31)
        assert nth_occurrence(template, 3) == date(2024, 4, 30)

    def test_end_date_bounds_the_series(self):
        template = template_for("weekly", date(2024, 1, 1), end_date=date(2024, 1, 10))

        assert occurrence_dates(template, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 1), date(2024, 1, 8)
        ]

    def test_long_running_series_stays_on_its_weekday(self):
        template = template_for("weekly", date(2023, 1, 2))

        assert occurrence_dates(template, date(2024, 1, 1), date(2024, 1, 14)) == [
            date(2024, 1, 1), date(2024, 1, 8)
        ]

    def test_long_running_monthly_series(self):
        template = template_for("monthly", date(2023, 5, 31))

        assert occurrence_dates(template, date(2024, 2, 1), date(2024, 4, 30)) == [
            date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
        ]

    def test_nothing_before_start_date(self):
        template = template_for("weekly", date(2024, 2, 5))

        assert occurrence_dates(template, date(2024, 1, 1), date(2024, 1, 31)) == []


class TestExpand:

    def test_weekly_horizon(self, db, business, service):
        template = create(db, business, service)

        result = RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        assert result.created_count == 5
        assert [a.occurrence_date for a in series(db, template)] == [
            date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)
        ]
        first = series(db, template)[0]
        assert first.starts_at == datetime(2024, 1, 1, 14, 0)
        assert first.ends_at == datetime(2024, 1, 1, 15, 0)
        assert first.status == "confirmed"
        assert first.source == "recurring"

    def test_second_expansion_creates_nothing(self, db, business, service):
        template = create(db, business, service)
        RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        again = RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        assert again.created_count == 0
        assert again.skipped_existing == 5
        assert len(series(db, template)) == 5

    def test_conflicting_occurrence_is_skipped(self, db, business, service, make_appointment):
        make_appointment(business, service, datetime(2024, 1, 15, 14, 30))
        template = create(db, business, service)

        result = RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        assert result.created_count == 4
        assert result.skipped_conflict == [date(2024, 1, 15)]

    def test_past_occurrence_is_skipped(self, db, business, service):
        template = create(db, business, service)

        result = RecurringService.expand(db, template.id, horizon_days=30, now=datetime(2024, 1, 1, 15, 0))

        assert result.skipped_past == 1
        assert result.created_count == 4

    def test_rolling_horizon_adds_new_occurrences(self, db, business, service):
        template = create(db, business, service)
        RecurringService.expand(db, template.id, horizon_days=7, now=NOW)

        later = RecurringService.expand(db, template.id, horizon_days=7, now=datetime(2024, 1, 8, 8, 0))

        assert later.created_count == 1
        assert [a.occurrence_date for a in series(db, template)] == [
            date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)
        ]

    def test_time_of_day_is_business_local(self, db, make_business, make_service):
        business = make_business(timezone="America/New_York")
        service = make_service(business)
        template = create(db, business, service)

        RecurringService.expand(db, template.id, horizon_days=0, now=NOW)

        assert series(db, template)[0].starts_at == datetime(2024, 1, 1, 19, 0)

    def test_expanded_instances_get_reminders(self, db, business, service):
        template = create(db, business, service)

        RecurringService.expand(db, template.id, horizon_days=7, now=NOW)

        second = series(db, template)[1]
        types = {r.reminder_type for r in db.query(Reminder).filter(Reminder.appointment_id == second.id)}
        assert types == {"24_hour", "1_hour"}

    def test_inactive_template_expands_nothing(self, db, business, service):
        template = create(db, business, service)
        RecurringService.deactivate_template(db, template.id, now=NOW)

        assert RecurringService.expand(db, template.id, horizon_days=30, now=NOW).created_count == 0

    def test_negative_horizon(self, db, business, service):
        template = create(db, business, service)

        with pytest.raises(InvalidInput):
            RecurringService.expand(db, template.id, horizon_days=-1, now=NOW)

    def test_create_expands_first_horizon(self, db, business, service):
        template, result = RecurringService.create_template(
            db, business.id, service.id, "Carmen Ortiz", "+17875559876", "weekly",
            date(2024, 1, 1), time(14, 0), now=NOW
        )

        assert result.created_count == 5
        assert template.last_expanded_at == NOW

    def test_storage_error_rolls_back_the_whole_expansion(self, db, business, service, monkeypatch):
        template = create(db, business, service)
        template_id = template.id

        def flush(*args, **kwargs):
            raise OperationalError("INSERT INTO appointments", {}, Exception("database is locked"))

        monkeypatch.setattr(db, "flush", flush)

        with pytest.raises(PersistenceFailure):
            RecurringService.expand(db, template_id, horizon_days=30, now=NOW)

        monkeypatch.undo()
        assert db.query(Appointment).filter(Appointment.recurring_id == template_id).count() == 0
        assert RecurringService.get_template(db, template_id).last_expanded_at is None

    def test_expand_all_survives_a_failing_template(self, db, business, service, make_service, monkeypatch):
        good = create(db, business, service)
        bad = create(db, business, make_service(business, name="Color"), time_of_day=time(9, 0))
        original = RecurringService.expand

        def flaky(db, template_id, horizon_days=None, now=None, business_id=None):
            if template_id == bad.id:
                raise RuntimeError("boom")
            return original(db, template_id, horizon_days, now, business_id)

        monkeypatch.setattr(RecurringService, "expand", staticmethod(flaky))

        summary = RecurringService.expand_all(db, business.id, horizon_days=30, now=NOW)

        assert summary["templates"] == 2
        assert summary["created"] == 5
        assert summary["failed"] == [str(bad.id)]
        assert len(series(db, good)) == 5


class TestTemplateLifecycle:

    def test_unsupported_frequency(self, db, business, service):
        with pytest.raises(InvalidInput):
            create(db, business, service, frequency="daily")

    def test_end_before_start(self, db, business, service):
        with pytest.raises(InvalidInput):
            create(db, business, service, end_date=date(2023, 12, 1))

    def test_deactivate_cancels_future_instances(self, db, business, service):
        template = create(db, business, service)
        RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        RecurringService.deactivate_template(db, template.id, now=datetime(2024, 1, 10))

        statuses = [(a.occurrence_date.day, a.status) for a in series(db, template)]
        assert statuses == [
            (1, "confirmed"), (8, "confirmed"), (15, "canceled"), (22, "canceled"), (29, "canceled")
        ]
        canceled = series(db, template)[2]
        assert canceled.notes.endswith("(Recurring series canceled)")
        skipped = db.query(Reminder).filter(Reminder.appointment_id == canceled.id).all()
        assert {r.status for r in skipped} == {"skipped"}

    def test_update_keeps_generated_instances(self, db, business, service):
        template = create(db, business, service)
        RecurringService.expand(db, template.id, horizon_days=7, now=NOW)

        updated = RecurringService.update_template(db, template.id, {"time_of_day": time(16, 0)}, now=NOW)

        assert updated.time_of_day == time(16, 0)
        assert [a.starts_at.hour for a in series(db, template)] == [14, 14]

    def test_update_service_refreshes_duration(self, db, business, service, make_service):
        template = create(db, business, service)
        longer = make_service(business, name="Color", duration_minutes=90)

        updated = RecurringService.update_template(db, template.id, {"service_id": longer.id}, now=NOW)

        assert updated.duration_minutes == 90

    def test_update_rejects_unknown_fields(self, db, business, service):
        template = create(db, business, service)

        with pytest.raises(InvalidInput):
            RecurringService.update_template(db, template.id, {"start_date": date(2024, 2, 1)})

    def test_update_rejects_empty_required_field(self, db, business, service):
        template = create(db, business, service)

        with pytest.raises(InvalidInput):
            RecurringService.update_template(db, template.id, {"customer_phone": ""})

    def test_delete_detaches_instances(self, db, business, service):
        template = create(db, business, service)
        RecurringService.expand(db, template.id, horizon_days=30, now=NOW)
        template_id = template.id

        result = RecurringService.delete_template(db, template_id, cancel_future=False, now=datetime(2024, 1, 10))

        assert result == {"deleted_customer": "Carmen Ortiz", "canceled_future": 0, "detached_appointments": 5}
        assert db.query(Appointment).filter(Appointment.recurring_id.isnot(None)).count() == 0
        assert db.query(Appointment).filter(Appointment.status == "confirmed").count() == 5
        with pytest.raises(NotFound):
            RecurringService.get_template(db, template_id)

    def test_delete_cancels_future_by_default(self, db, business, service):
        template = create(db, business, service)
        RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        result = RecurringService.delete_template(db, template.id, now=datetime(2024, 1, 10))

        assert result["canceled_future"] == 3
        notes = [a.notes for a in db.query(Appointment).filter(Appointment.status == "canceled")]
        assert all(n.endswith("(Recurring series deleted)") for n in notes)

    def test_list_with_totals(self, db, business, service, make_staff):
        staff = make_staff(business)
        template = create(db, business, service)
        create(db, business, service, staff=make_staff(business, display_name="Luis"))
        RecurringService.expand(db, template.id, horizon_days=30, now=NOW)

        listed = RecurringService.list_templates(db, business.id, staff_id=staff.id)

        assert len(listed) == 1
        assert listed[0]["id"] == str(template.id)
        assert listed[0]["total_appointments"] == 5
        assert listed[0]["last_appointment_date"] == "2024-01-29T14:00:00"
        assert listed[0]["time_of_day"] == "14:00"

    def test_list_filters_active(self, db, business, service):
        template = create(db, business, service)
        RecurringService.deactivate_template(db, template.id, now=NOW)

        assert RecurringService.list_templates(db, business.id, is_active=True) == []
        assert len(RecurringService.list_templates(db, business.id, is_active=False)) == 1
