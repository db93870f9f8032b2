"""Pydantic schemas for patient history documents."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentType(str, Enum):
    """Kinds of medical-history documents."""

    XRAY = "xray"
    REPORT = "report"
    PRESCRIPTION = "prescription"
    OTHER = "other"


class PatientHistoryCreate(BaseModel):
    """Metadata submitted with a document upload."""

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    document_type: DocumentType = DocumentType.OTHER


class PatientHistoryRecord(BaseModel):
    """Medical-history record, optionally linked to a stored file."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    title: str
    description: str | None = None
    document_type: DocumentType
    file_url: str | None = None
    file_name: str | None = None
    upload_date: datetime
