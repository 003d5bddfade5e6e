"""
Authentication Routes

GET /auth/me - Get current user info

Login and registration belong to the external auth service.
"""

from fastapi import APIRouter, Depends

from alumni_portal.core.auth import get_current_user
from alumni_portal.schemas.schemas import UserResponse
from alumni_portal.services.mongo_service import serialize_doc

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/me", response_model=UserResponse)
async def get_me(user: dict = Depends(get_current_user)):
    """Get current authenticated user's info."""
    return serialize_doc(user)
