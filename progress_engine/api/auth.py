"""API authentication using API keys, plus caller identity"""
import os
import logging
from typing import Optional
from fastapi import Header, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from progress_engine.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_api_keys() -> list[str]:
    """Load API keys from environment variable"""
    api_keys_str = os.getenv("API_KEYS", "")
    if not api_keys_str:
        logger.warning("No API_KEYS configured in environment")
        return []
    return [key.strip() for key in api_keys_str.split(",") if key.strip()]


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """
    Verify API key from Authorization header

    Raises:
        HTTPException: If API key is invalid
    """
    api_key = credentials.credentials
    valid_keys = get_api_keys()

    if not valid_keys:
        logger.error("No API keys configured - rejecting all requests")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API authentication not configured"
        )

    if api_key not in valid_keys:
        logger.warning(f"Invalid API key attempt: {api_key[:10]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )

    logger.debug(f"API key validated: {api_key[:10]}...")
    return api_key


async def get_caller_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Authenticated end user, forwarded by the embedding auth layer.

    Raises:
        AuthenticationError: If the X-User-Id header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise AuthenticationError("Missing X-User-Id header", operation="get_caller_id")
    return x_user_id.strip()


def require_same_user(caller_id: str, user_id: str) -> None:
    """Progress reads are limited to the caller's own records"""
    if caller_id != user_id:
        logger.warning(f"User {caller_id} attempted to read progress of {user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot access another user's progress"
        )
