"""Bearer-token guard for the ``/admin`` routes.

The token is compared against ``ADMIN_API_KEY``; a wrong or missing token
gets 401. With no key configured the admin API is open only when ``DEBUG``
is on, and answers 403 otherwise. ``/health`` does not use this guard.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from viewings.config import settings

log = logging.getLogger("viewings.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


async def require_admin_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> None:
    """FastAPI dependency: protect admin endpoints with a bearer token."""
    key = settings.admin_api_key

    if not key:
        if settings.debug:
            return
        log.warning("Admin request refused: ADMIN_API_KEY is not set")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API is locked until ADMIN_API_KEY is set.",
        )

    if credentials is None or not hmac.compare_digest(credentials.credentials, key):
        log.warning("Rejected admin request with invalid or missing token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
