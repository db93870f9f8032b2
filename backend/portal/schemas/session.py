"""Pydantic schemas for the session API.

SessionStatus is the session state machine:
uninitialized -> restoring -> anonymous | authenticated.
"""

from enum import Enum

from pydantic import BaseModel, EmailStr, Field

from portal.schemas.profile import Profile


class SessionStatus(str, Enum):
    """Session lifecycle states."""

    UNINITIALIZED = "uninitialized"
    RESTORING = "restoring"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class SignInRequest(BaseModel):
    """Credentials submitted by the login form."""

    email: EmailStr
    password: str = Field(min_length=1)


class SignUpRequest(BaseModel):
    """Fields submitted by the registration form."""

    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1, max_length=200)


class IdentityResponse(BaseModel):
    id: str
    email: str


class SessionResponse(BaseModel):
    """Current session as seen by views."""

    status: SessionStatus
    identity: IdentityResponse | None = Field(
        default=None, description="Present only when status is authenticated"
    )
    profile: Profile | None = None
    profile_loading: bool = False
    access_token: str | None = Field(
        default=None,
        description="Bearer token for patient routes; returned by sign-in and sign-up only",
    )
