import secrets
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from feecycle.auth.schemas import CurrentUser
from feecycle.auth.security import decode_access_token
from feecycle.core.config import settings


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Resolve the acting user from the access token. Users themselves live outside this service."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    if not user_id_str:
        raise credentials_exception
    try:
        user_id = UUID(str(user_id_str))
    except ValueError:
        raise credentials_exception

    return CurrentUser(id=user_id, role=payload.get("role"))


async def require_cron_api_key(x_cron_api_key: Optional[str] = Header(None)) -> None:
    """Guard for cron-style callers of maintenance endpoints."""
    expected = settings.cron_api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron API key not configured on server",
        )
    if not x_cron_api_key or not secrets.compare_digest(x_cron_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Invalid or missing cron API key.",
        )
