"""Session dependencies for API routes.

The session manager and platform client live on ``app.state`` for the life of
the process. Sign-in and sign-up issue a bearer token bound to the signed-in
user; routes that act for the patient depend on ``require_identity``, which
only accepts that token.

The token is the portal's own and stays valid across platform token refreshes
until sign-out or the next sign-in.
"""

import secrets
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from portal.services.platform import PlatformClient, PlatformUser
from portal.services.session_manager import SessionManager

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class ApiToken:
    """Bearer token issued to the client that signed in."""

    value: str
    user_id: str


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_platform(request: Request) -> PlatformClient:
    return request.app.state.platform


def issue_api_token(request: Request, user: PlatformUser) -> str:
    """Issue a new bearer token for ``user``, replacing any earlier one."""
    token = ApiToken(value=secrets.token_urlsafe(32), user_id=user.id)
    request.app.state.api_token = token
    return token.value


def revoke_api_token(request: Request) -> None:
    request.app.state.api_token = None


async def current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    manager: SessionManager = Depends(get_session_manager),
) -> PlatformUser | None:
    """Return the signed-in identity if the caller presents its bearer token."""
    if credentials is None:
        return None
    identity = manager.snapshot().identity
    issued: ApiToken | None = getattr(request.app.state, "api_token", None)
    if identity is None or issued is None or issued.user_id != identity.id:
        return None
    if not secrets.compare_digest(credentials.credentials, issued.value):
        return None
    return identity


async def require_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    identity: PlatformUser | None = Depends(current_identity),
) -> PlatformUser:
    """Return the signed-in identity for the token holder.

    Raises:
        HTTPException: 401 if the token is missing, or does not belong to the
            currently signed-in user.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return identity
