# ============================================================================
# app/services/appointment/appointment_query_service.py
# Read side of the calendar - no FastAPI dependencies
# ============================================================================
from sqlalchemy import and_
from sqlalchemy.orm import Session
from datetime import datetime, date, time, timedelta
from typing import Optional, Dict, Any, List
from uuid import UUID

from app.models.appointment import Appointment, ACTIVE_STATUSES
from app.models.business import Business
from app.utils.time_utils import get_tz, localize, resolve_now, to_utc_naive


class AppointmentQueryService:
    """Calendar listings and lookups"""

    @staticmethod
    def _day_bounds(business: Business, start_date: Optional[date], end_date: Optional[date]):
        """Local calendar dates -> naive UTC [start, end) bounds"""
        tz = get_tz(business.timezone)
        lower = to_utc_naive(localize(start_date, time.min, tz)) if start_date else None
        upper = to_utc_naive(localize(end_date + timedelta(days=1), time.min, tz)) if end_date else None
        return lower, upper

    @staticmethod
    def build_filters(
            business: Business,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            staff_id: Optional[UUID] = None,
            unassigned_only: bool = False,
            statuses: Optional[List[str]] = None,
            recurring_id: Optional[UUID] = None,
            customer_phone: Optional[str] = None
    ) -> list:
        """Optional filters as a list of predicates, ANDed by the caller"""
        lower, upper = AppointmentQueryService._day_bounds(business, start_date, end_date)

        predicates = [Appointment.business_id == business.id]
        if lower is not None:
            predicates.append(Appointment.starts_at >= lower)
        if upper is not None:
            predicates.append(Appointment.starts_at < upper)
        if unassigned_only:
            predicates.append(Appointment.staff_id.is_(None))
        elif staff_id is not None:
            predicates.append(Appointment.staff_id == staff_id)
        if statuses:
            predicates.append(Appointment.status.in_(statuses))
        if recurring_id is not None:
            predicates.append(Appointment.recurring_id == recurring_id)
        if customer_phone:
            predicates.append(Appointment.customer_phone == customer_phone)
        return predicates

    @staticmethod
    def list_appointments(
            db: Session,
            business: Business,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            staff_id: Optional[UUID] = None,
            unassigned_only: bool = False,
            statuses: Optional[List[str]] = None,
            recurring_id: Optional[UUID] = None,
            customer_phone: Optional[str] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Dict[str, Any]:
        """Get paginated list of appointments with filters."""
        predicates = AppointmentQueryService.build_filters(
            business, start_date, end_date, staff_id, unassigned_only, statuses, recurring_id, customer_phone
        )
        query = db.query(Appointment).filter(and_(*predicates)).order_by(Appointment.starts_at.asc())

        total = query.count()
        appointments = query.offset(skip).limit(limit).all()

        return {
            "business_id": str(business.id),
            "total_appointments": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "filters": {
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "staff_id": str(staff_id) if staff_id else None,
                "unassigned_only": unassigned_only,
                "statuses": statuses or [],
                "recurring_id": str(recurring_id) if recurring_id else None,
                "customer_phone": customer_phone
            },
            "appointments": [AppointmentQueryService.serialize(appt) for appt in appointments]
        }

    @staticmethod
    def get_appointment_by_id(
            db: Session,
            business_id: UUID,
            appointment_id: UUID
    ) -> Optional[Dict[str, Any]]:
        """Get a single appointment by ID. Returns None if not found."""
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.business_id == business_id
        ).first()

        if not appointment:
            return None

        return AppointmentQueryService.serialize(appointment, detailed=True)

    @staticmethod
    def get_upcoming(
            db: Session,
            business_id: UUID,
            days: int = 7,
            staff_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> List[Appointment]:
        """Active appointments starting within the next `days` days"""
        current = resolve_now(now)
        query = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.starts_at >= current,
            Appointment.starts_at < current + timedelta(days=days)
        )
        if staff_id is not None:
            query = query.filter(Appointment.staff_id == staff_id)
        return query.order_by(Appointment.starts_at.asc()).all()

    @staticmethod
    def serialize(appointment: Appointment, detailed: bool = False) -> Dict[str, Any]:
        """Convert Appointment model to dictionary."""
        base = {
            "id": str(appointment.id),
            "business_id": str(appointment.business_id),
            "service_id": str(appointment.service_id),
            "staff_id": str(appointment.staff_id) if appointment.staff_id else None,
            "recurring_id": str(appointment.recurring_id) if appointment.recurring_id else None,
            "customer_name": appointment.customer_name,
            "customer_phone": appointment.customer_phone,
            "customer_email": appointment.customer_email,
            "starts_at": appointment.starts_at.isoformat(),
            "ends_at": appointment.ends_at.isoformat(),
            "duration_minutes": appointment.duration_minutes,
            "status": appointment.status,
            "source": appointment.source,
            "notes": appointment.notes
        }

        if detailed:
            base.update({
                "service_name": appointment.service.name if appointment.service else None,
                "service_duration": appointment.service.formatted_duration if appointment.service else None,
                "occurrence_date": appointment.occurrence_date.isoformat() if appointment.occurrence_date else None,
                "price_cents": appointment.price_cents,
                "deposit_cents": appointment.deposit_cents,
                "created_at": appointment.created_at.isoformat() if appointment.created_at else None,
                "cancelled_at": appointment.cancelled_at.isoformat() if appointment.cancelled_at else None,
                "cancellation_reason": appointment.cancellation_reason
            })

        return base
