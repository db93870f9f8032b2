"""Session API routes.

The login and registration views post credentials here and keep the returned
``access_token`` as their bearer token; the dashboard reads the session to
decide what to render and signs out through it.
"""

from fastapi import APIRouter, Depends, Request

from portal.auth import (
    current_identity,
    get_session_manager,
    issue_api_token,
    require_identity,
    revoke_api_token,
)
from portal.schemas.session import (
    IdentityResponse,
    SessionResponse,
    SessionStatus,
    SignInRequest,
    SignUpRequest,
)
from portal.services.platform import PlatformUser
from portal.services.session_manager import SessionManager, SessionSnapshot

router = APIRouter(tags=["session"])


def to_session_response(
    snapshot: SessionSnapshot, access_token: str | None = None
) -> SessionResponse:
    """Convert a session snapshot to the API response schema."""
    identity = None
    if snapshot.identity is not None:
        identity = IdentityResponse(id=snapshot.identity.id, email=snapshot.identity.email)
    return SessionResponse(
        status=snapshot.status,
        identity=identity,
        profile=snapshot.profile,
        profile_loading=snapshot.profile_loading,
        access_token=access_token,
    )


@router.get("/session", response_model=SessionResponse)
async def get_session(
    manager: SessionManager = Depends(get_session_manager),
    identity: PlatformUser | None = Depends(current_identity),
) -> SessionResponse:
    """Get the current session state.

    Callers without the signed-in patient's token see an anonymous session.
    """
    snapshot = manager.snapshot()
    if snapshot.is_authenticated and identity is None:
        return SessionResponse(status=SessionStatus.ANONYMOUS)
    return to_session_response(snapshot)


@router.post("/auth/sign-in", response_model=SessionResponse)
async def sign_in(
    credentials: SignInRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Sign in with email and password.

    Returns:
        The authenticated session with the patient's profile and the bearer
        token for patient routes.

    Raises:
        InvalidCredentials: 401 if the email/password pair is rejected.
        NetworkError: 503 if the platform cannot be reached.
    """
    snapshot = await manager.sign_in(credentials.email, credentials.password)
    token = issue_api_token(request, snapshot.identity) if snapshot.identity else None
    return to_session_response(snapshot, token)


@router.post("/auth/sign-up", response_model=SessionResponse, status_code=201)
async def sign_up(
    registration: SignUpRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Register a new patient account and sign in.

    Raises:
        EmailAlreadyRegistered: 409 if the email already has an account.
        NetworkError: 503 if the platform cannot be reached.
    """
    snapshot = await manager.sign_up(
        registration.email, registration.password, registration.full_name
    )
    token = issue_api_token(request, snapshot.identity) if snapshot.identity else None
    return to_session_response(snapshot, token)


@router.post("/auth/sign-out", response_model=SessionResponse)
async def sign_out(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
    _identity: PlatformUser = Depends(require_identity),
) -> SessionResponse:
    """Sign out and revoke the bearer token. Always succeeds locally."""
    revoke_api_token(request)
    snapshot = await manager.sign_out()
    return to_session_response(snapshot)
