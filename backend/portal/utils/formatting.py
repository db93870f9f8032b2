"""Display formatting for dates, times and statuses shown in the portal.

All functions are pure and accept None where the value is optional.
"""

from datetime import date, time

from portal.schemas.appointment import AppointmentStatus

# Statuses that count as upcoming on the dashboard
UPCOMING_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


def format_date(value: date | None, missing: str = "Not provided") -> str:
    """Format a date as M/D/YYYY.

    >>> format_date(date(2024, 3, 7))
    '3/7/2024'
    """
    if value is None:
        return missing
    return f"{value.month}/{value.day}/{value.year}"


def format_time(value: time) -> str:
    """Format a time as HH:MM, dropping seconds.

    >>> format_time(time(9, 30))
    '09:30'
    """
    return value.strftime("%H:%M")


def status_label(status: AppointmentStatus) -> str:
    """Capitalized status label, e.g. 'Pending'."""
    return status.value.capitalize()


def is_upcoming(status: AppointmentStatus) -> bool:
    return status in UPCOMING_STATUSES
