# app/services/business/business_service.py
"""Lookups for the read-only collaborators of the scheduling core"""
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from app.core.exceptions import NotFound, InvalidInput
from app.models.business import Business, Staff
from app.models.service import Service

logger = logging.getLogger(__name__)


class BusinessService:
    """Resolves businesses, services and staff, scoped to their business"""

    @staticmethod
    def get_business(db: Session, business_id: UUID) -> Business:
        business = db.query(Business).filter(Business.id == business_id).first()
        if not business:
            raise NotFound("Business not found", {"business_id": str(business_id)})
        return business

    @staticmethod
    def get_business_by_slug(db: Session, slug: str) -> Business:
        business = db.query(Business).filter(
            Business.slug == slug,
            Business.is_active == True
        ).first()
        if not business:
            raise NotFound("Business not found", {"slug": slug})
        return business

    @staticmethod
    def get_service(db: Session, business_id: UUID, service_id: UUID, require_active: bool = True) -> Service:
        """Service must belong to the business; inactive services cannot be booked"""
        service = db.query(Service).filter(
            Service.id == service_id,
            Service.business_id == business_id
        ).first()
        if not service:
            raise NotFound("Service not found", {"service_id": str(service_id)})
        if require_active and not service.is_active:
            raise InvalidInput("Service is not active", {"service_id": str(service_id)})
        return service

    @staticmethod
    def get_staff(db: Session, business_id: UUID, staff_id: Optional[UUID]) -> Optional[Staff]:
        """None means the business-wide (unassigned) calendar"""
        if staff_id is None:
            return None
        staff = db.query(Staff).filter(
            Staff.id == staff_id,
            Staff.business_id == business_id
        ).first()
        if not staff or not staff.is_active:
            raise NotFound("Staff member not found", {"staff_id": str(staff_id)})
        return staff
