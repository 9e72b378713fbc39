"""
Admin Auth - bearer token guard for backfill and enrichment endpoints
"""
import hmac
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import logging

from app.core import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_sync_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """Require Authorization: Bearer <SYNC_ADMIN_TOKEN>. No token configured denies everyone."""
    expected = settings.SYNC_ADMIN_TOKEN.strip()
    if not expected:
        logger.warning("Admin endpoint called but SYNC_ADMIN_TOKEN is not configured")
        raise _unauthorized("Admin token not configured")
    if not credentials or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    if not hmac.compare_digest(credentials.credentials.encode("utf-8"), expected.encode("utf-8")):
        raise _unauthorized("Invalid token")


__all__ = ["require_sync_admin"]
