"""Pydantic schemas."""

from portal.schemas.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
    AppointmentView,
)
from portal.schemas.catalog import Doctor, HomepageResponse, Service
from portal.schemas.dashboard import DashboardResponse, DashboardStats
from portal.schemas.history import DocumentType, PatientHistoryCreate, PatientHistoryRecord
from portal.schemas.profile import Profile, ProfileUpdate
from portal.schemas.session import (
    IdentityResponse,
    SessionResponse,
    SessionStatus,
    SignInRequest,
    SignUpRequest,
)

__all__ = [
    "Doctor",
    "HomepageResponse",
    "Service",
    "Profile",
    "ProfileUpdate",
    # Session schemas
    "IdentityResponse",
    "SessionResponse",
    "SessionStatus",
    "SignInRequest",
    "SignUpRequest",
    # Appointment schemas
    "Appointment",
    "AppointmentCreate",
    "AppointmentStatus",
    "AppointmentView",
    # History schemas
    "DocumentType",
    "PatientHistoryCreate",
    "PatientHistoryRecord",
    # Dashboard schemas
    "DashboardResponse",
    "DashboardStats",
]
