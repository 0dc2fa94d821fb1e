from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import get_settings

logger = logging.getLogger(__name__)

_security = HTTPBasic(auto_error=False)


# PUBLIC_INTERFACE
def get_basic_auth_dependency():
    """
    Return a FastAPI dependency callable that enforces HTTP Basic Auth only when
    ENABLE_BASIC_AUTH is enabled in settings. When disabled, the dependency is a no-op.

    Behavior:
    - If settings.enable_basic_auth is False (default): returns a dependency that does nothing.
    - If True: validates provided credentials against BASIC_AUTH_USERNAME/BASIC_AUTH_PASSWORD.
      If credentials are missing or invalid, raises 401 with WWW-Authenticate: Basic.

    Usage:
        router = APIRouter(dependencies=[Depends(get_basic_auth_dependency())])
    """
    settings = get_settings()

    if not settings.enable_basic_auth:
        async def _noop() -> None:  # noqa: D401 - trivial
            """No-op dependency (auth disabled)."""
            return None

        return _noop

    expected_user: Optional[str] = settings.basic_auth_username
    expected_pass: Optional[str] = settings.basic_auth_password

    async def _enforce(creds: Optional[HTTPBasicCredentials] = Depends(_security)) -> None:
        """
        Enforce HTTP Basic authentication when enabled.

        Raises:
            HTTPException(401) if credentials are missing or invalid.
        """
        if creds is None or creds.username is None or creds.password is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Basic"},
            )

        if expected_user is None or expected_pass is None:
            logger.error("ENABLE_BASIC_AUTH is set but BASIC_AUTH_USERNAME/PASSWORD are missing")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Server authentication not configured",
                headers={"WWW-Authenticate": "Basic"},
            )

        if not (creds.username == expected_user and creds.password == expected_pass):
            logger.warning("rejected basic auth credentials for user %r", creds.username)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Basic"},
            )

    return _enforce


# PUBLIC_INTERFACE
def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, description="Caller identity"),
) -> str:
    """
    Resolve the calling user's identity from the X-User-Id header.
    Session management lives outside this service; when the header is absent
    the configured DEFAULT_USER_ID is used (single-user deployments).
    """
    if x_user_id is not None and x_user_id.strip():
        return x_user_id.strip()
    return get_settings().default_user_id
