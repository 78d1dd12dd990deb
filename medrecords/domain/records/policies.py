from __future__ import annotations

import mimetypes
from typing import Iterable, List, Optional

from medrecords.domain.records.exceptions import (
    DraftValidationError,
    FileTooLargeError,
    UnsupportedMediaTypeError,
)
from medrecords.domain.records.models import REQUIRED_FIELDS, DraftState, LocalFile
from medrecords.domain.records.storage_paths import is_safe_patient_segment

_MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}
_GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def normalize_media_type(content_type: Optional[str]) -> str:
    base = str(content_type or "").split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(base, base)


class AcceptedMediaTypes:
    """
    Policy applied where files are selected, before they enter a draft.

    Entries are exact types ("image/png") or family wildcards ("image/*").
    The uploader trusts the selection and does not re-check; the Object Store
    is expected to enforce its own content rules.
    """

    DEFAULT = ("image/png", "image/jpeg")

    def __init__(self, media_types: Optional[Iterable[str]] = None, max_bytes: int = 0):
        types = [normalize_media_type(item) for item in (media_types or self.DEFAULT)]
        self.media_types = tuple(item for item in types if item)
        self.max_bytes = max(0, int(max_bytes or 0))

    def resolve_type(self, file: LocalFile) -> str:
        declared = normalize_media_type(file.content_type)
        if declared in _GENERIC_TYPES:
            guessed, _ = mimetypes.guess_type(file.filename)
            return normalize_media_type(guessed)
        return declared

    def allows(self, media_type: str) -> bool:
        for accepted in self.media_types:
            if accepted.endswith("/*"):
                if media_type.startswith(accepted[:-1]):
                    return True
            elif media_type == accepted:
                return True
        return False

    def check_size(self, filename: str, size: int) -> None:
        if self.max_bytes and size > self.max_bytes:
            raise FileTooLargeError(
                f"{filename}: file is {size} bytes, limit is {self.max_bytes}",
                filename=filename,
                size=size,
                limit=self.max_bytes,
            )

    def check(self, file: LocalFile) -> LocalFile:
        media_type = self.resolve_type(file)
        if not self.allows(media_type):
            raise UnsupportedMediaTypeError(
                f"{file.filename}: unsupported file type '{media_type or 'unknown'}'. "
                f"Allowed: {', '.join(self.media_types)}",
                filename=file.filename,
                content_type=media_type,
            )
        self.check_size(file.filename, file.size)
        if media_type != file.content_type:
            return LocalFile(filename=file.filename, content_type=media_type, data=file.data)
        return file

    def select(self, draft: DraftState, files: Iterable[LocalFile]) -> List[LocalFile]:
        """Validates every file, then replaces the draft selection. All or nothing."""
        accepted = [self.check(file) for file in files]
        draft.replace_files(accepted)
        return accepted


def validate_draft(draft: DraftState) -> None:
    if not is_safe_patient_segment(draft.patient_id):
        raise DraftValidationError("Patient id is not valid.", field="patient_id")
    for name in REQUIRED_FIELDS:
        if not str(draft.fields.get(name) or "").strip():
            raise DraftValidationError(f"{name.replace('_', ' ').capitalize()} is required.", field=name)
