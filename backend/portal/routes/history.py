"""Patient history API routes.

Uploads are multipart: the record fields are form fields and the document is
an optional file part.
"""

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status

from portal.auth import get_platform, require_identity
from portal.repositories.history import HistoryRepository, check_upload_size
from portal.schemas.history import DocumentType, PatientHistoryCreate, PatientHistoryRecord
from portal.services.platform import PlatformClient, PlatformUser

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=list[PatientHistoryRecord])
async def list_history(
    platform: PlatformClient = Depends(get_platform),
    identity: PlatformUser = Depends(require_identity),
) -> list[PatientHistoryRecord]:
    """List the signed-in patient's history records, newest first."""
    return await HistoryRepository(platform).list_for_patient(identity.id)


@router.post("", response_model=PatientHistoryRecord, status_code=status.HTTP_201_CREATED)
async def upload_history(
    title: str = Form(..., min_length=1, max_length=200),
    description: str | None = Form(None, max_length=2000),
    document_type: DocumentType = Form(DocumentType.OTHER),
    file: UploadFile | None = File(None),
    platform: PlatformClient = Depends(get_platform),
    identity: PlatformUser = Depends(require_identity),
) -> PatientHistoryRecord:
    """Create a history record with an optional document.

    Raises:
        ValidationError: 422 if the document is larger than the upload limit.
    """
    data = PatientHistoryCreate(
        title=title,
        description=description,
        document_type=document_type,
    )
    repo = HistoryRepository(platform)

    if file is None or not file.filename:
        return await repo.create(identity.id, data)

    if file.size is not None:
        check_upload_size(file.size)
    content = await file.read()
    return await repo.create(
        identity.id,
        data,
        file_name=file.filename,
        content=content,
        content_type=file.content_type or "application/octet-stream",
    )


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_history(
    record_id: str,
    platform: PlatformClient = Depends(get_platform),
    identity: PlatformUser = Depends(require_identity),
) -> Response:
    """Delete a history record and its stored document.

    Raises:
        RecordNotFound: 404 if the patient has no record with this id.
    """
    await HistoryRepository(platform).delete(identity.id, record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
