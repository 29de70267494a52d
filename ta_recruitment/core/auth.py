"""
Authentication Utility - JWT handling.

Provides:
- JWT token creation/verification
- FastAPI dependencies for protected routes

Sign-in itself (Google OAuth) happens elsewhere; this service only trusts
tokens signed with the shared secret whose `sub` is a user id.
"""

from datetime import datetime, timedelta
from typing import Optional
from bson import ObjectId
from bson.errors import InvalidId
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ta_recruitment.core.config import get_settings
from ta_recruitment.services.mongo_service import UserService

settings = get_settings()

# Bearer token extractor (auto_error=False so a missing header is a 401, not a 403)
bearer_scheme = HTTPBearer(auto_error=False)


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
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    payload = decode_token(credentials.credentials)
    if not payload:
        raise credentials_exception

    try:
        user_id = ObjectId(payload.get("sub"))
    except (InvalidId, TypeError):
        raise credentials_exception

    user = UserService().get(user_id)
    if not user:
        raise credentials_exception

    return {
        "user_id": str(user["_id"]),
        "email": user.get("email"),
        "name": user.get("name"),
        "role": user.get("role")
    }


def require_roles(*roles: str):
    """
    Dependency factory - restrict a route to some roles.

    Usage:
        @router.get("/modules")
        async def route(user: dict = Depends(require_roles("lecturer"))):
            ...
    """
    async def _check(user: dict = Depends(get_current_user)) -> dict:
        if user["role"] not in roles:
            raise HTTPException(status_code=403, detail="Not authorized for this action")
        return user

    return _check
