"""Dashboard API route."""

from fastapi import APIRouter, Depends

from portal.auth import get_platform, get_session_manager, require_identity
from portal.repositories.appointments import AppointmentRepository
from portal.repositories.catalog import CatalogRepository
from portal.schemas.dashboard import DashboardResponse
from portal.services.dashboard import build_dashboard
from portal.services.platform import PlatformClient, PlatformUser
from portal.services.session_manager import SessionManager

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    platform: PlatformClient = Depends(get_platform),
    manager: SessionManager = Depends(get_session_manager),
    identity: PlatformUser = Depends(require_identity),
) -> DashboardResponse:
    """Overview for the signed-in patient: counts and appointment list."""
    appointments = await AppointmentRepository(platform).list_for_patient(identity.id)
    doctors = await CatalogRepository(platform).list_doctors()
    return build_dashboard(
        profile=manager.snapshot().profile,
        email=identity.email,
        appointments=appointments,
        doctor_count=len(doctors),
    )
