"""Appointment API routes."""

from fastapi import APIRouter, Depends, status

from portal.auth import get_platform, require_identity
from portal.repositories.appointments import AppointmentRepository
from portal.schemas.appointment import Appointment, AppointmentCreate
from portal.services.platform import PlatformClient, PlatformUser

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("", response_model=list[Appointment])
async def list_appointments(
    platform: PlatformClient = Depends(get_platform),
    identity: PlatformUser = Depends(require_identity),
) -> list[Appointment]:
    """List the signed-in patient's appointments, most recent date first."""
    return await AppointmentRepository(platform).list_for_patient(identity.id)


@router.post("", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    appointment_data: AppointmentCreate,
    platform: PlatformClient = Depends(get_platform),
    identity: PlatformUser = Depends(require_identity),
) -> Appointment:
    """Book an appointment. New appointments start as pending.

    Args:
        appointment_data: Doctor, date and time (service and notes optional).

    Returns:
        The stored appointment.
    """
    return await AppointmentRepository(platform).book(identity.id, appointment_data)
