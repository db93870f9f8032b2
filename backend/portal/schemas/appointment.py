"""Pydantic schemas for appointments."""

from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.catalog import Doctor, Service


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment."""

    doctor_id: str = Field(min_length=1)
    service_id: str | None = None
    appointment_date: date
    appointment_time: time
    notes: str | None = Field(default=None, max_length=2000)


class Appointment(BaseModel):
    """Appointment with embedded doctor and service when selected."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    doctor_id: str
    service_id: str | None = None
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus
    notes: str | None = None
    created_at: datetime
    doctor: Doctor | None = None
    service: Service | None = None


class AppointmentView(Appointment):
    """Appointment with display labels for the dashboard list."""

    date_label: str
    time_label: str
    status_label: str
