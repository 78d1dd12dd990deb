from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import BaseModel, Field

from medrecords.api.v1.auth import get_access_token
from medrecords.api.v1.errors import ERROR_RESPONSES, FAILURE_STATUS, ApiError
from medrecords.application.use_cases.submit_medical_record_use_case import (
    SubmitMedicalRecordCommand,
)
from medrecords.domain.records.exceptions import FileTooLargeError, UnsupportedMediaTypeError
from medrecords.domain.records.models import DraftState, LocalFile
from medrecords.domain.records.policies import AcceptedMediaTypes
from medrecords.infrastructure.container import ServiceContainer

logger = structlog.get_logger(__name__)
router = APIRouter(tags=["medical-records"])


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


class MedicalRecordPayload(BaseModel):
    id: Optional[str] = Field(default=None, examples=["7b1f4c0e-5d0e-4d7e-9a57-0b7f0c3c9d11"])
    patient_id: str
    diagnosis: str
    treatment_plan: str = ""
    medications: str = ""
    allergies: str = ""
    medical_history: str = ""
    file_urls: List[str] = Field(default_factory=list)
    created_by: str
    created_at: Optional[str] = None


class MedicalRecordCreateResponse(BaseModel):
    status: str = Field(examples=["succeeded"])
    message: str = Field(examples=["Medical record added successfully!"])
    record: MedicalRecordPayload


class PreviewItem(BaseModel):
    filename: str
    content_type: str
    size_bytes: int
    url: str


class PreviewResponse(BaseModel):
    items: List[PreviewItem]


@contextmanager
def _selection_errors() -> Iterator[None]:
    try:
        yield
    except UnsupportedMediaTypeError as exc:
        raise ApiError(
            status_code=415,
            code="UNSUPPORTED_MEDIA_TYPE",
            message=exc.message,
            details={"filename": exc.filename, "content_type": exc.content_type},
        ) from exc
    except FileTooLargeError as exc:
        raise ApiError(
            status_code=413,
            code="FILE_TOO_LARGE",
            message=exc.message,
            details={"filename": exc.filename, "size": exc.size, "limit": exc.limit},
        ) from exc


async def _read_uploads(policy: AcceptedMediaTypes, uploads: Optional[List[UploadFile]]) -> List[LocalFile]:
    """Reads each part into memory, never more than one byte past the size ceiling."""
    local_files: List[LocalFile] = []
    for upload in uploads or []:
        filename = upload.filename or ""
        if policy.max_bytes:
            data = await upload.read(policy.max_bytes + 1)
            if len(data) > policy.max_bytes:
                policy.check_size(filename, max(upload.size or 0, len(data)))
        else:
            data = await upload.read()
        local_files.append(
            LocalFile(
                filename=filename,
                content_type=upload.content_type or "application/octet-stream",
                data=data,
            )
        )
    return local_files


@router.post(
    "/patients/{patient_id}/medical-records",
    operation_id="createMedicalRecord",
    summary="Add a medical record to a patient",
    description=(
        "Uploads the selected scans in order, then saves one medical record that "
        "references their public URLs. Nothing is retried; stored scans are not "
        "rolled back if the record cannot be saved."
    ),
    status_code=201,
    response_model=MedicalRecordCreateResponse,
    responses={code: ERROR_RESPONSES[code] for code in (401, 409, 413, 415, 422, 500, 502)},
)
async def create_medical_record(
    patient_id: str,
    diagnosis: str = Form(""),
    treatment_plan: str = Form(""),
    medications: str = Form(""),
    allergies: str = Form(""),
    medical_history: str = Form(""),
    files: Optional[List[UploadFile]] = File(None),
    access_token: Optional[str] = Depends(get_access_token),
    container: ServiceContainer = Depends(get_container),
) -> MedicalRecordCreateResponse:
    draft = DraftState(
        patient_id,
        {
            "diagnosis": diagnosis,
            "treatment_plan": treatment_plan,
            "medications": medications,
            "allergies": allergies,
            "medical_history": medical_history,
        },
    )
    with _selection_errors():
        container.media_policy.select(draft, await _read_uploads(container.media_policy, files))

    outcome = await container.submit_use_case.execute(
        SubmitMedicalRecordCommand(
            draft=draft,
            identity_provider=container.identity_provider_for(access_token),
        )
    )

    if not outcome.succeeded or outcome.record is None:
        status_code, code = FAILURE_STATUS.get(outcome.reason, (500, "INTERNAL_ERROR"))
        details: Dict[str, Any] = {"reason": outcome.reason.value if outcome.reason else None}
        if outcome.orphaned_paths:
            details["orphaned_paths"] = list(outcome.orphaned_paths)
        raise ApiError(status_code=status_code, code=code, message=outcome.message, details=details)

    return MedicalRecordCreateResponse(
        status=outcome.status.value,
        message=outcome.message,
        record=MedicalRecordPayload(**outcome.record.as_dict()),
    )


@router.post(
    "/medical-records/previews",
    operation_id="previewMedicalRecordFiles",
    summary="Build local preview handles for selected scans",
    response_model=PreviewResponse,
    responses={code: ERROR_RESPONSES[code] for code in (413, 415)},
)
async def preview_files(
    files: List[UploadFile] = File(...),
    container: ServiceContainer = Depends(get_container),
) -> PreviewResponse:
    with _selection_errors():
        uploads = await _read_uploads(container.media_policy, files)
        selected = [container.media_policy.check(local_file) for local_file in uploads]
    handles = container.preview_service.build_handles(selected)
    return PreviewResponse(
        items=[
            PreviewItem(
                filename=handle.filename,
                content_type=handle.content_type,
                size_bytes=handle.size_bytes,
                url=handle.url,
            )
            for handle in handles
        ]
    )
