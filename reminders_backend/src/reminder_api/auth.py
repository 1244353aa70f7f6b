from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .settings import get_settings

_security = HTTPBearer(auto_error=False)


# PUBLIC_INTERFACE
async def require_trigger_token(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_security),
) -> None:
    """
    Enforce a bearer token on the job trigger only when ENABLE_TRIGGER_AUTH is
    enabled in settings. When disabled, this dependency does nothing.

    Behavior:
    - If settings.enable_trigger_auth is False (default): request proceeds.
    - If True: the Authorization header must be 'Bearer <TRIGGER_TOKEN>'.
      Missing or wrong tokens raise 401 with WWW-Authenticate: Bearer.

    Usage:
        @router.post("/run", dependencies=[Depends(require_trigger_token)]) ...
    """
    settings = get_settings()
    if not settings.enable_trigger_auth:
        return None

    if creds is None or not creds.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expected = settings.trigger_token
    if not expected:
        # Misconfiguration: auth enabled but no token configured
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Server authentication not configured",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not secrets.compare_digest(creds.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
