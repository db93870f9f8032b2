"""Dashboard overview: appointment counts and list formatting."""

from portal.schemas.appointment import Appointment, AppointmentView
from portal.schemas.dashboard import DashboardResponse, DashboardStats
from portal.schemas.profile import Profile
from portal.utils.formatting import format_date, format_time, is_upcoming, status_label


def to_view(appointment: Appointment) -> AppointmentView:
    """Attach display labels to an appointment."""
    return AppointmentView(
        **appointment.model_dump(),
        date_label=format_date(appointment.appointment_date),
        time_label=format_time(appointment.appointment_time),
        status_label=status_label(appointment.status),
    )


def build_stats(appointments: list[Appointment], doctor_count: int) -> DashboardStats:
    """Count total and upcoming (pending or confirmed) appointments."""
    return DashboardStats(
        total_appointments=len(appointments),
        upcoming_appointments=sum(1 for a in appointments if is_upcoming(a.status)),
        doctors=doctor_count,
    )


def build_dashboard(
    profile: Profile | None,
    email: str,
    appointments: list[Appointment],
    doctor_count: int,
) -> DashboardResponse:
    """Assemble the dashboard overview for the signed-in patient.

    Falls back to the account email when the profile is not loaded.
    """
    return DashboardResponse(
        greeting_name=profile.full_name if profile else email,
        stats=build_stats(appointments, doctor_count),
        appointments=[to_view(a) for a in appointments],
    )
