"""Pydantic schemas for patient profiles."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Profile(BaseModel):
    """Patient profile as stored on the platform (one per identity)."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    full_name: str
    email: str
    phone_number: str | None = None
    date_of_birth: date | None = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    """Partial profile update. Only fields that are set are written."""

    full_name: str | None = Field(default=None, min_length=1, max_length=200)
    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, max_length=40)
    date_of_birth: date | None = None
