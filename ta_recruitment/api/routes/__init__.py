"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from ta_recruitment.api.routes.ta_routes import router as ta_router
from ta_recruitment.api.routes.lecturer_routes import router as lecturer_router
from ta_recruitment.api.routes.application_routes import router as application_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(ta_router)
api_router.include_router(lecturer_router)
api_router.include_router(application_router)
