from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


REQUIRED_FIELDS: Tuple[str, ...] = ("diagnosis",)
OPTIONAL_FIELDS: Tuple[str, ...] = ("treatment_plan", "medications", "allergies", "medical_history")
RECORD_FIELDS: Tuple[str, ...] = REQUIRED_FIELDS + OPTIONAL_FIELDS


@dataclass(frozen=True)
class IdentityContext:
    """The caller as reported by the Identity Provider at read time."""

    subject_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class LocalFile:
    """A file selected on the client side; the bytes live only for the upload call."""

    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, content_type: Optional[str] = None) -> "LocalFile":
        file_path = Path(path)
        guessed = content_type or mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        return cls(filename=file_path.name, content_type=guessed, data=file_path.read_bytes())


class DraftState:
    """In-memory form-in-progress owned by a single submission session."""

    def __init__(self, patient_id: str, fields: Optional[Dict[str, str]] = None):
        patient = str(patient_id or "").strip()
        if not patient:
            raise ValueError("patient_id is required to open a draft")
        self._patient_id = patient
        self.fields: Dict[str, str] = {name: "" for name in RECORD_FIELDS}
        self.selected_files: List[LocalFile] = []
        self.discarded = False
        for name, value in (fields or {}).items():
            self.set_field(name, value)

    @property
    def patient_id(self) -> str:
        return self._patient_id

    def set_field(self, name: str, value: Optional[str]) -> None:
        if name not in RECORD_FIELDS:
            raise KeyError(f"Unknown medical record field: {name}")
        self.fields[name] = "" if value is None else str(value)

    def replace_files(self, files: List[LocalFile]) -> None:
        # Re-selecting replaces the whole selection, preserving the new order.
        self.selected_files = list(files)

    def discard(self) -> None:
        self.fields = {name: "" for name in RECORD_FIELDS}
        self.selected_files = []
        self.discarded = True


@dataclass(frozen=True)
class UploadedAsset:
    source_handle: LocalFile = field(repr=False)
    storage_path: str
    public_locator: str


@dataclass(frozen=True)
class PersistedRecord:
    patient_id: str
    fields: Dict[str, str]
    file_urls: List[str]
    created_by: str
    id: Optional[str] = None
    created_at: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            **self.fields,
            "file_urls": list(self.file_urls),
            "created_by": self.created_by,
            "created_at": self.created_at,
        }


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    GATING = "gating"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, Enum):
    VALIDATION = "validation_error"
    AUTH = "auth_error"
    UPLOAD = "upload_error"
    COMMIT = "commit_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SubmissionProgress:
    state: SubmissionState
    index: int = 0
    total: int = 0
    reason: Optional[FailureReason] = None


@dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionState
    message: str
    reason: Optional[FailureReason] = None
    record: Optional[PersistedRecord] = None
    orphaned_paths: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is SubmissionState.SUCCEEDED
