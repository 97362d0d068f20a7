"""
API v1 router setup
Organized into: public (no auth) and dashboard (JWT bound to a clinic)
"""
from fastapi import APIRouter

from clinicbook.api.v1.public import bookings, clinics
from clinicbook.api.v1.dashboard import appointments, invoices, notifications, patients

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (No authentication required)
# ============================================================================
api_v1_router.include_router(
    clinics.router,
    prefix="/public/clinics",
    tags=["Public"]
)

api_v1_router.include_router(
    bookings.router,
    prefix="/public",
    tags=["Public"]
)

# ============================================================================
# DASHBOARD ROUTES (JWT authentication required, scoped to the token's clinic)
# ============================================================================
api_v1_router.include_router(
    patients.router,
    prefix="/dashboard/patients",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    appointments.router,
    prefix="/dashboard/appointments",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    invoices.router,
    prefix="/dashboard/invoices",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    notifications.router,
    prefix="/dashboard/notifications",
    tags=["Dashboard"]
)


@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and authentication model"""
    return {
        "version": "1.0",
        "authentication": {
            "public": "No authentication required",
            "dashboard": "JWT Bearer token carrying a clinic_id claim",
        }
    }
