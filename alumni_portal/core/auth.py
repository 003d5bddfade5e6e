"""
Authentication Utility - JWT verification and role checks.

Credentials are issued by the external auth service; this module only
verifies the bearer token and loads the caller's user document.

Provides:
- JWT token creation/verification
- FastAPI dependencies for protected routes
"""

from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pymongo.database import Database

from alumni_portal.core.config import get_settings
from alumni_portal.core.errors import NotFoundError
from alumni_portal.db.mongodb import get_database
from alumni_portal.schemas.schemas import UserRole
from alumni_portal.services.mongo_service import UserStore

settings = get_settings()

# Bearer token extractor
bearer_scheme = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Database = Depends(get_database),
) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @app.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    try:
        user = UserStore(db).get_by_id(user_id)
    except NotFoundError:
        user = None

    if not user:
        raise credentials_exception

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account deactivated")

    return user


def require_roles(*roles: UserRole):
    """
    Dependency factory - Require one of the given roles.

    Usage:
        @router.patch("/x")
        async def route(admin: dict = Depends(require_roles(UserRole.admin))):
            ...
    """
    allowed = {r.value for r in roles}

    async def checker(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"User role {user.get('role')} is not authorized to access this route"
            )
        return user

    return checker


get_current_admin = require_roles(UserRole.admin)
get_current_student = require_roles(UserRole.student)
