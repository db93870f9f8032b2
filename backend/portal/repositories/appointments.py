"""Appointment repository.

Appointments are listed with their doctor and service embedded, newest
appointment date first. New bookings always start as pending.
"""

from portal.schemas.appointment import Appointment, AppointmentCreate, AppointmentStatus
from portal.services.platform import PlatformClient

APPOINTMENTS_TABLE = "appointments"

# Embed the referenced doctor and service rows in each appointment
_APPOINTMENT_COLUMNS = "*, doctor:doctors(*), service:services(*)"


class AppointmentRepository:
    """Repository for a patient's appointments."""

    def __init__(self, platform: PlatformClient):
        self.platform = platform

    async def list_for_patient(self, patient_id: str) -> list[Appointment]:
        """List a patient's appointments, most recent date first.

        Args:
            patient_id: Identity id of the patient.

        Returns:
            Appointments with doctor and service embedded.
        """
        rows = await self.platform.select(
            APPOINTMENTS_TABLE,
            columns=_APPOINTMENT_COLUMNS,
            filters={"patient_id": patient_id},
            order="appointment_date",
            descending=True,
        )
        return [Appointment.model_validate(row) for row in rows]

    async def book(self, patient_id: str, data: AppointmentCreate) -> Appointment:
        """Book a pending appointment for a patient.

        Args:
            patient_id: Identity id of the patient.
            data: Booking form fields.

        Returns:
            The stored appointment.
        """
        record = data.model_dump(mode="json")
        record["patient_id"] = patient_id
        record["status"] = AppointmentStatus.PENDING.value
        row = await self.platform.insert(APPOINTMENTS_TABLE, record)
        return Appointment.model_validate(row)
