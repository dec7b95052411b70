"""
Authentication helpers.

- bcrypt password hashing
- JWT bearer tokens carrying the user id
- FastAPI dependencies for protected, optional and admin-only routes
"""

import hashlib
from datetime import datetime, timedelta

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.config import settings
from cakeheaven.core.database import get_db
from cakeheaven.core.exceptions import AuthenticationError
from cakeheaven.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


# ==================== Passwords ====================


def hash_password(password: str) -> str:
    """Hash a plain-text password with a fresh salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a plain-text password against its stored hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def hash_token(token: str) -> str:
    """SHA-256 digest used to store password reset tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ==================== Tokens ====================


def create_access_token(user_id: int, expires_days: int | None = None) -> str:
    """Issue a signed JWT for the given user."""
    days = expires_days if expires_days is not None else settings.jwt_access_token_expire_days
    payload = {
        "id": user_id,
        "exp": datetime.utcnow() + timedelta(days=days),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT, raising AuthenticationError when invalid."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Not authorized, token failed")


# ==================== Dependencies ====================


async def _user_from_token(db: AsyncSession, token: str) -> User:
    payload = decode_access_token(token)
    user_id = payload.get("id")
    if user_id is None:
        raise AuthenticationError("Not authorized, token failed")

    user = await db.get(User, int(user_id))
    if not user:
        raise AuthenticationError("Not authorized, user not found")
    if not user.is_active:
        raise AuthenticationError("Account is inactive or has been deactivated")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user."""
    if credentials is None:
        raise AuthenticationError("Not authorized, no token")
    return await _user_from_token(db, credentials.credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Like get_current_user, but anonymous or invalid tokens yield None."""
    if credentials is None:
        return None
    try:
        return await _user_from_token(db, credentials.credentials)
    except AuthenticationError:
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow only administrators through."""
    if not user.is_admin:
        raise AuthenticationError("Not authorized as an admin")
    return user
