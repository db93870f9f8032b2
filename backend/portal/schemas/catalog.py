"""Pydantic schemas for clinic doctors and services."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Doctor(BaseModel):
    """Clinic doctor."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    specialization: str
    qualification: str
    experience_years: int
    image_url: str | None = None
    available_days: list[str] = Field(default_factory=list)
    created_at: datetime


class Service(BaseModel):
    """Clinic service offered to patients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    icon: str
    created_at: datetime


class HomepageResponse(BaseModel):
    """Marketing homepage content."""

    name: str
    tagline: str
    services: list[Service]
    doctors: list[Doctor]
