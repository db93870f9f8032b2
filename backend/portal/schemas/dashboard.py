"""Pydantic schemas for the patient dashboard."""

from pydantic import BaseModel

from portal.schemas.appointment import AppointmentView


class DashboardStats(BaseModel):
    """Counts shown on the dashboard overview cards."""

    total_appointments: int
    upcoming_appointments: int
    doctors: int


class DashboardResponse(BaseModel):
    """Dashboard overview for the signed-in patient."""

    greeting_name: str
    stats: DashboardStats
    appointments: list[AppointmentView]
