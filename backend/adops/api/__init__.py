"""
API routers for the ad operations console.
"""

from fastapi import APIRouter

from adops.api.advertisers import router as advertisers_router
from adops.api.auth import router as auth_router
from adops.api.fiscal import router as fiscal_router
from adops.api.invoices import router as invoices_router
from adops.api.users import router as users_router

# Main API router
api_router = APIRouter(prefix="/api/v1")

# Include sub-routers
api_router.include_router(auth_router)
api_router.include_router(invoices_router)
api_router.include_router(advertisers_router)
api_router.include_router(fiscal_router)
api_router.include_router(users_router)

__all__ = ["api_router"]
