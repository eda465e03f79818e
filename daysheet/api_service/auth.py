"""
Single-user authentication for Daysheet.

The configured user logs in once and receives a JWT; every /api/v1 route
requires it as a bearer token.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
import logging

from daysheet.api_service.core.settings import settings
from daysheet.shared.errors import AuthError

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def authenticate_user(username: str, password: str) -> bool:
    """Authenticate the single user against configured credentials"""
    return username == settings.DAYSHEET_USERNAME and password == settings.DAYSHEET_PASSWORD


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> str:
    """Returns the username carried by a valid token."""
    if not token:
        raise AuthError("Not authenticated")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        raise AuthError("Could not validate credentials") from e

    username = payload.get("sub")
    if username is None or username != settings.DAYSHEET_USERNAME:
        raise AuthError("Could not validate credentials")
    return username


def require_auth(current_user: str = Depends(get_current_user)) -> str:
    """Dependency to require authentication for endpoints"""
    return current_user
