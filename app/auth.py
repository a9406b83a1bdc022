"""
Authentication helpers: bcrypt password hashing, JWT bearer tokens and the
FastAPI dependencies that resolve the calling user.
"""
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from lib_database.models import User, UserRole
from lib_database.user_repository import UserRepository
from .config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRE_DAYS
from .dependencies import get_user_repository

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user: User) -> str:
    payload = {
        "userId": user.id,
        "email": user.email,
        "role": user.role.value,
        "exp": datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Raises:
        HTTPException(401): token is invalid or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info("[Auth] JWT verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    users: UserRepository = Depends(get_user_repository),
) -> User:
    """
    Resolve the bearer token to a stored user. The user is re-read on every
    request so allowance and role changes take effect immediately.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = decode_access_token(credentials.credentials)
    user = await users.get_user(payload.get("userId"))
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Access denied: admin required")
    return user
