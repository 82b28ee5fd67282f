"""
Shared fixtures: an in-memory SQLite database with a fresh schema per test,
factories for the collaborators the scheduling core reads, and an API client
wired to the same database.
"""
import os

# Must be set before app.config.database builds its engine
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import (
    Base, Business, Staff, Service, AvailabilityRule, Appointment, AppointmentStatus
)

MONDAY = 1  # 0=Sunday


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def make_business(db):
    def factory(**overrides):
        values = {
            "name": "Barberia Central",
            "slug": f"barberia-{len(db.query(Business).all()) + 1}",
            "timezone": "UTC",
            "messaging_mode": "manual",
            "is_active": True,
        }
        values.update(overrides)
        business = Business(**values)
        db.add(business)
        db.commit()
        db.refresh(business)
        return business
    return factory


@pytest.fixture
def make_staff(db):
    def factory(business, **overrides):
        values = {"business_id": business.id, "display_name": "Ana", "is_active": True}
        values.update(overrides)
        staff = Staff(**values)
        db.add(staff)
        db.commit()
        db.refresh(staff)
        return staff
    return factory


@pytest.fixture
def make_service(db):
    def factory(business, **overrides):
        values = {
            "business_id": business.id,
            "name": "Haircut",
            "duration_minutes": 60,
            "buffer_before_minutes": 0,
            "buffer_after_minutes": 0,
            "max_per_slot": 1,
            "price_cents": 2500,
            "deposit_cents": 0,
            "is_active": True,
        }
        values.update(overrides)
        service = Service(**values)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service
    return factory


@pytest.fixture
def make_rule(db):
    def factory(business, weekday=MONDAY, start=time(9, 0), end=time(17, 0), staff=None, is_active=True):
        rule = AvailabilityRule(
            business_id=business.id,
            staff_id=staff.id if staff else None,
            weekday=weekday,
            start_time=start,
            end_time=end,
            is_active=is_active,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule
    return factory


@pytest.fixture
def make_appointment(db):
    """Insert an appointment directly, bypassing the booking checks"""
    def factory(business, service, starts_at, staff=None, status=AppointmentStatus.CONFIRMED.value, **overrides):
        values = {
            "business_id": business.id,
            "service_id": service.id,
            "staff_id": staff.id if staff else None,
            "customer_name": "Existing Customer",
            "customer_phone": "+17875550100",
            "starts_at": starts_at,
            "ends_at": starts_at + timedelta(minutes=service.duration_minutes),
            "status": status,
        }
        values.update(overrides)
        appointment = Appointment(**values)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment
    return factory


@pytest.fixture
def business(make_business):
    return make_business()


@pytest.fixture
def service(make_service, business):
    return make_service(business)


@pytest.fixture
def monday_hours(make_rule, business):
    """Business open Monday 09:00-17:00"""
    return make_rule(business)


@pytest.fixture
def open_every_day(make_rule, business):
    """Business open 09:00-17:00 all week"""
    return [make_rule(business, weekday=weekday) for weekday in range(7)]


# 2024-01-01 is a Monday
MONDAY_DATE = datetime(2024, 1, 1).date()
BEFORE_MONDAY = datetime(2023, 12, 30, 0, 0)


def at(hour, minute=0, day=MONDAY_DATE):
    """Naive UTC instant on the test Monday"""
    return datetime.combine(day, time(hour, minute))


# ============================================================================
# API client
# ============================================================================

@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from app.config.database import get_db
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
