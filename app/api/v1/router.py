"""
API v1 router setup
Organized into: public booking pages, business calendar management, and the
reminder dispatcher interface
"""
from fastapi import APIRouter

from app.api.v1 import availability, appointments, recurring, reminders
from app.api.v1.public import booking

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (customer booking pages)
# ============================================================================
api_v1_router.include_router(
    booking.router,
    # No prefix needed - booking.router already has "/public/{slug}" prefix
    tags=["Public"]
)

# ============================================================================
# BUSINESS ROUTES (calendar management)
# ============================================================================
api_v1_router.include_router(availability.router, tags=["Business"])
api_v1_router.include_router(appointments.router, tags=["Business"])
api_v1_router.include_router(recurring.router, tags=["Business"])

# ============================================================================
# DISPATCHER ROUTES (external messaging integration)
# ============================================================================
api_v1_router.include_router(reminders.router, tags=["Dispatcher"])


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and available route groups."""
    return {
        "version": "1.0",
        "routes": {
            "public": "/api/v1/public/{slug}/...",
            "business": "/api/v1/businesses/{business_id}/...",
            "dispatcher": "/api/v1/reminders/..."
        }
    }
