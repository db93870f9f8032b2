"""Patient history repository.

History records may link to a document stored in the documents bucket under
``<patient_id>/<epoch_ms>.<ext>``. Deleting a record removes its stored
document first.
"""

from __future__ import annotations

import logging
import time
from pathlib import PurePosixPath

from portal.config import settings
from portal.errors import PortalError, RecordNotFound, ValidationError
from portal.schemas.history import PatientHistoryCreate, PatientHistoryRecord
from portal.services.platform import PlatformClient

logger = logging.getLogger(__name__)

HISTORY_TABLE = "patient_history"


def check_upload_size(size: int) -> None:
    """Reject documents larger than the configured upload limit.

    Raises:
        ValidationError: If ``size`` exceeds settings.max_upload_bytes.
    """
    if size > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationError(f"File size must be less than {limit_mb}MB")


def build_storage_path(patient_id: str, file_name: str, now_ms: int | None = None) -> str:
    """Build the bucket path for an uploaded document.

    >>> build_storage_path("u1", "knee.png", now_ms=1700000000000)
    'u1/1700000000000.png'
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = PurePosixPath(file_name).suffix
    return f"{patient_id}/{now_ms}{suffix}"


def storage_path_from_url(file_url: str, bucket: str) -> str | None:
    """Extract the bucket path from a public object URL.

    Returns None if the URL does not point into ``bucket``.
    """
    marker = f"/{bucket}/"
    if marker not in file_url:
        return None
    path = file_url.split(marker, 1)[1]
    return path or None


class HistoryRepository:
    """Repository for a patient's medical-history documents."""

    def __init__(self, platform: PlatformClient, bucket: str | None = None):
        self.platform = platform
        self.bucket = bucket or settings.documents_bucket

    async def list_for_patient(self, patient_id: str) -> list[PatientHistoryRecord]:
        """List a patient's history records, newest upload first."""
        rows = await self.platform.select(
            HISTORY_TABLE,
            filters={"patient_id": patient_id},
            order="upload_date",
            descending=True,
        )
        return [PatientHistoryRecord.model_validate(row) for row in rows]

    async def create(
        self,
        patient_id: str,
        data: PatientHistoryCreate,
        file_name: str | None = None,
        content: bytes | None = None,
        content_type: str = "application/octet-stream",
    ) -> PatientHistoryRecord:
        """Create a history record, uploading its document if one is given.

        If the record cannot be saved, the uploaded document is removed again
        and the insert error is raised.

        Raises:
            ValidationError: If the document exceeds the upload size limit.
        """
        record = data.model_dump(mode="json")
        record["patient_id"] = patient_id
        record["file_url"] = None
        record["file_name"] = None

        path = None
        if file_name and content is not None:
            check_upload_size(len(content))

            path = build_storage_path(patient_id, file_name)
            await self.platform.upload(self.bucket, path, content, content_type)
            record["file_url"] = await self.platform.get_public_url(self.bucket, path)
            record["file_name"] = file_name
            logger.info(f"Uploaded document {path} ({len(content)} bytes)")

        try:
            row = await self.platform.insert(HISTORY_TABLE, record)
        except PortalError:
            if path is not None:
                await self._remove_orphan(path)
            raise
        return PatientHistoryRecord.model_validate(row)

    async def _remove_orphan(self, path: str) -> None:
        """Remove a document whose history record could not be saved."""
        try:
            await self.platform.remove(self.bucket, [path])
        except PortalError as e:
            logger.warning(f"Could not remove orphaned document {path}: {e}")

    async def delete(self, patient_id: str, record_id: str) -> None:
        """Delete a history record and its stored document.

        Raises:
            RecordNotFound: If the patient has no record with this id.
        """
        rows = await self.platform.select(
            HISTORY_TABLE, filters={"id": record_id, "patient_id": patient_id}
        )
        if not rows:
            raise RecordNotFound("History record not found")

        file_url = rows[0].get("file_url")
        if file_url:
            path = storage_path_from_url(file_url, self.bucket)
            if path:
                await self.platform.remove(self.bucket, [path])

        await self.platform.delete(HISTORY_TABLE, filters={"id": record_id})
