"""Tests for the catalog, appointment and history repositories."""

from datetime import date, time

import pytest

from portal.errors import NetworkError, RecordNotFound, ValidationError
from portal.repositories.appointments import AppointmentRepository
from portal.repositories.catalog import CatalogRepository
from portal.repositories.history import (
    HistoryRepository,
    build_storage_path,
    check_upload_size,
    storage_path_from_url,
)
from portal.schemas.appointment import AppointmentCreate, AppointmentStatus
from portal.schemas.history import DocumentType, PatientHistoryCreate
from tests.conftest import CREATED_AT

PATIENT_ID = "user-alice"
BUCKET = "patient-documents"


def appointment_row(appointment_id: str, appointment_date: str, status: str = "pending") -> dict:
    return {
        "id": appointment_id,
        "patient_id": PATIENT_ID,
        "doctor_id": "doc-1",
        "service_id": "svc-1",
        "appointment_date": appointment_date,
        "appointment_time": "09:30:00",
        "status": status,
        "notes": None,
        "created_at": CREATED_AT,
    }


def history_row(record_id: str, file_url: str | None = None) -> dict:
    return {
        "id": record_id,
        "patient_id": PATIENT_ID,
        "title": "Knee X-ray",
        "description": None,
        "document_type": "xray",
        "file_url": file_url,
        "file_name": "knee.png" if file_url else None,
        "upload_date": CREATED_AT,
    }


# =============================================================================
# Catalog
# =============================================================================


class TestCatalogRepository:
    """Tests for CatalogRepository."""

    @pytest.mark.asyncio
    async def test_doctors_ordered_by_name(self, clinic):
        doctors = await CatalogRepository(clinic).list_doctors()

        assert [d.full_name for d in doctors] == ["Dr. Aaron Brooks", "Dr. Maya Chen"]

    @pytest.mark.asyncio
    async def test_services_ordered_by_name(self, clinic):
        services = await CatalogRepository(clinic).list_services()

        assert [s.name for s in services] == ["Fracture Care", "Joint Replacement"]

    @pytest.mark.asyncio
    async def test_empty_catalog(self, fake_platform):
        assert await CatalogRepository(fake_platform).list_doctors() == []


# =============================================================================
# Appointments
# =============================================================================


class TestAppointmentRepository:
    """Tests for AppointmentRepository."""

    @pytest.mark.asyncio
    async def test_list_embeds_doctor_and_service(self, clinic):
        clinic.tables["appointments"].append(appointment_row("a1", "2024-07-01"))

        appointments = await AppointmentRepository(clinic).list_for_patient(PATIENT_ID)

        assert len(appointments) == 1
        assert appointments[0].doctor.full_name == "Dr. Maya Chen"
        assert appointments[0].service.name == "Joint Replacement"

    @pytest.mark.asyncio
    async def test_list_most_recent_date_first(self, clinic):
        clinic.tables["appointments"].extend(
            [
                appointment_row("a1", "2024-05-01"),
                appointment_row("a2", "2024-09-15"),
                appointment_row("a3", "2024-07-20"),
            ]
        )

        appointments = await AppointmentRepository(clinic).list_for_patient(PATIENT_ID)

        assert [a.id for a in appointments] == ["a2", "a3", "a1"]

    @pytest.mark.asyncio
    async def test_list_only_own_appointments(self, clinic):
        clinic.tables["appointments"].extend(
            [
                appointment_row("a1", "2024-05-01"),
                {**appointment_row("a2", "2024-05-02"), "patient_id": "user-bob"},
            ]
        )

        appointments = await AppointmentRepository(clinic).list_for_patient(PATIENT_ID)

        assert [a.id for a in appointments] == ["a1"]

    @pytest.mark.asyncio
    async def test_book_is_pending(self, clinic):
        data = AppointmentCreate(
            doctor_id="doc-1",
            service_id="svc-2",
            appointment_date=date(2024, 8, 12),
            appointment_time=time(14, 0),
            notes="Left knee pain",
        )

        appointment = await AppointmentRepository(clinic).book(PATIENT_ID, data)

        assert appointment.status is AppointmentStatus.PENDING
        assert appointment.patient_id == PATIENT_ID
        stored = clinic.tables["appointments"][0]
        assert stored["appointment_date"] == "2024-08-12"
        assert stored["appointment_time"] == "14:00:00"
        assert stored["status"] == "pending"


# =============================================================================
# History
# =============================================================================


class TestStoragePaths:
    """Tests for document path helpers."""

    def test_build_storage_path(self):
        assert build_storage_path("u1", "knee.png", now_ms=1700000000000) == "u1/1700000000000.png"

    def test_build_storage_path_keeps_last_extension(self):
        assert build_storage_path("u1", "scan.final.pdf", now_ms=5) == "u1/5.pdf"

    def test_build_storage_path_without_extension(self):
        assert build_storage_path("u1", "notes", now_ms=5) == "u1/5"

    def test_storage_path_from_url(self):
        url = f"https://x.supabase.co/storage/v1/object/public/{BUCKET}/u1/5.png"
        assert storage_path_from_url(url, BUCKET) == "u1/5.png"

    def test_storage_path_from_foreign_url(self):
        assert storage_path_from_url("https://elsewhere.test/file.png", BUCKET) is None


class TestHistoryRepository:
    """Tests for HistoryRepository."""

    @pytest.mark.asyncio
    async def test_create_without_document(self, fake_platform):
        data = PatientHistoryCreate(title="Surgery notes", document_type=DocumentType.REPORT)

        record = await HistoryRepository(fake_platform).create(PATIENT_ID, data)

        assert record.title == "Surgery notes"
        assert record.file_url is None
        assert fake_platform.count("upload") == 0

    @pytest.mark.asyncio
    async def test_create_uploads_document(self, fake_platform):
        data = PatientHistoryCreate(title="Knee X-ray", document_type=DocumentType.XRAY)

        record = await HistoryRepository(fake_platform).create(
            PATIENT_ID, data, file_name="knee.png", content=b"png-bytes", content_type="image/png"
        )

        uploads = [c for c in fake_platform.calls if c[0] == "upload"]
        assert len(uploads) == 1
        _, bucket, path = uploads[0]
        assert bucket == BUCKET
        assert path.startswith(f"{PATIENT_ID}/")
        assert path.endswith(".png")
        assert fake_platform.objects[f"{BUCKET}/{path}"] == b"png-bytes"
        assert record.file_url.endswith(f"/{BUCKET}/{path}")
        assert record.file_name == "knee.png"

    @pytest.mark.asyncio
    async def test_create_rejects_large_document(self, fake_platform):
        data = PatientHistoryCreate(title="Huge scan")
        content = b"\0" * (10 * 1024 * 1024 + 1)

        with pytest.raises(ValidationError, match="less than 10MB"):
            await HistoryRepository(fake_platform).create(
                PATIENT_ID, data, file_name="scan.dcm", content=content
            )

        assert fake_platform.count("upload") == 0
        assert fake_platform.count("insert") == 0

    @pytest.mark.asyncio
    async def test_failed_insert_removes_uploaded_document(self, fake_platform):
        """A document whose record cannot be saved is not left in the bucket."""
        fake_platform.insert_error = ValidationError("null value in column \"title\"")
        data = PatientHistoryCreate(title="Knee X-ray")

        with pytest.raises(ValidationError):
            await HistoryRepository(fake_platform).create(
                PATIENT_ID, data, file_name="knee.png", content=b"png-bytes"
            )

        assert fake_platform.count("upload") == 1
        assert fake_platform.count("remove") == 1
        assert fake_platform.objects == {}

    @pytest.mark.asyncio
    async def test_failed_cleanup_raises_insert_error(self, fake_platform):
        fake_platform.insert_error = NetworkError("Platform request timed out: insert")
        fake_platform.remove_error = NetworkError("Platform request timed out: remove")
        data = PatientHistoryCreate(title="Knee X-ray")

        with pytest.raises(NetworkError, match="insert"):
            await HistoryRepository(fake_platform).create(
                PATIENT_ID, data, file_name="knee.png", content=b"png-bytes"
            )

    @pytest.mark.asyncio
    async def test_failed_insert_without_document_removes_nothing(self, fake_platform):
        fake_platform.insert_error = ValidationError("rejected")

        with pytest.raises(ValidationError):
            await HistoryRepository(fake_platform).create(
                PATIENT_ID, PatientHistoryCreate(title="Notes")
            )

        assert fake_platform.count("remove") == 0

    def test_check_upload_size(self):
        check_upload_size(10 * 1024 * 1024)
        with pytest.raises(ValidationError, match="less than 10MB"):
            check_upload_size(10 * 1024 * 1024 + 1)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, fake_platform):
        fake_platform.tables["patient_history"].extend(
            [
                history_row("h1"),
                {**history_row("h2"), "upload_date": "2024-09-01T00:00:00+00:00"},
            ]
        )

        records = await HistoryRepository(fake_platform).list_for_patient(PATIENT_ID)

        assert [r.id for r in records] == ["h2", "h1"]

    @pytest.mark.asyncio
    async def test_delete_removes_document_then_record(self, fake_platform):
        repo = HistoryRepository(fake_platform)
        record = await repo.create(
            PATIENT_ID,
            PatientHistoryCreate(title="Knee X-ray"),
            file_name="knee.png",
            content=b"png-bytes",
        )

        await repo.delete(PATIENT_ID, record.id)

        names = [c[0] for c in fake_platform.calls]
        assert names.index("remove") < names.index("delete")
        assert fake_platform.objects == {}
        assert fake_platform.tables["patient_history"] == []

    @pytest.mark.asyncio
    async def test_delete_without_document(self, fake_platform):
        fake_platform.tables["patient_history"].append(history_row("h1"))

        await HistoryRepository(fake_platform).delete(PATIENT_ID, "h1")

        assert fake_platform.count("remove") == 0
        assert fake_platform.tables["patient_history"] == []

    @pytest.mark.asyncio
    async def test_delete_other_patients_record(self, fake_platform):
        fake_platform.tables["patient_history"].append(
            {**history_row("h1"), "patient_id": "user-bob"}
        )

        with pytest.raises(RecordNotFound):
            await HistoryRepository(fake_platform).delete(PATIENT_ID, "h1")

        assert len(fake_platform.tables["patient_history"]) == 1
