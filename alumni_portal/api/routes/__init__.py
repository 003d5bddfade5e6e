"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from alumni_portal.api.routes.auth_routes import router as auth_router
from alumni_portal.api.routes.session_routes import router as session_router
from alumni_portal.api.routes.notification_routes import router as notification_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(auth_router)
api_router.include_router(session_router)
api_router.include_router(notification_router)
