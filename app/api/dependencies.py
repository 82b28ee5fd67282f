# ============================================================================
# FILE: app/api/dependencies.py
# Request-scoped lookups shared by the v1 routers
# ============================================================================
from fastapi import Depends, Path
from sqlalchemy.orm import Session
from uuid import UUID

from app.config.database import get_db
from app.models.business import Business
from app.services.business.business_service import BusinessService


def get_business(
        business_id: UUID = Path(..., description="The business ID"),
        db: Session = Depends(get_db)
) -> Business:
    """Resolve the business from the path; 404 through the NotFound handler"""
    return BusinessService.get_business(db, business_id)


def get_public_business(
        slug: str = Path(..., description="Public booking page slug"),
        db: Session = Depends(get_db)
) -> Business:
    """Active business behind a public booking page"""
    return BusinessService.get_business_by_slug(db, slug)
