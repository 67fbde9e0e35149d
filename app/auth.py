"""
Request authentication for Clipstream.

Two callers reach this service:
- the workflow engine, which authenticates with a shared API key
- end users, already authenticated by the identity provider in front of the
  service, which forwards the user id in the X-User-Id header
"""

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from app.config import get_settings

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "X-Clipstream-API-Key"},
    )


async def verify_api_key(
    x_clipstream_api_key: Optional[str] = Header(None, alias="X-Clipstream-API-Key"),
) -> None:
    """
    FastAPI dependency to verify the workflow engine's API key.

    If CLIPSTREAM_API_KEY is configured, requests must include a matching
    X-Clipstream-API-Key header. If not configured, authentication is skipped
    (development mode).

    Raises:
        HTTPException: 401 if API key is missing or invalid
    """
    settings = get_settings()
    expected_key = settings.clipstream_api_key

    # If no API key configured, skip validation (development mode)
    if not expected_key:
        logger.debug("CLIPSTREAM_API_KEY not configured, skipping authentication")
        return

    if not x_clipstream_api_key:
        logger.warning("Request missing X-Clipstream-API-Key header")
        raise _unauthorized("Missing API key")

    # Constant-time comparison
    if not secrets.compare_digest(x_clipstream_api_key.encode(), expected_key.encode()):
        logger.warning("Invalid API key received")
        raise _unauthorized("Invalid API key")


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    FastAPI dependency returning the authenticated user's id.

    Raises:
        HTTPException: 401 if the identity header is absent
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return x_user_id
