from typing import Literal, Optional


class RecordIngestionError(Exception):
    """Base error for the medical record ingestion pipeline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DraftValidationError(RecordIngestionError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthenticationRequiredError(RecordIngestionError):
    pass


class AssetUploadError(RecordIngestionError):
    """
    Raised when one file cannot be stored or its public locator cannot be resolved.
    `stage` tells the two apart: on "resolve" the object already exists in storage.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Literal["write", "resolve"],
        storage_path: str,
        filename: str,
    ):
        super().__init__(message)
        self.stage = stage
        self.storage_path = storage_path
        self.filename = filename


class RecordCommitError(RecordIngestionError):
    pass


class SubmissionCancelledError(RecordIngestionError):
    def __init__(
        self,
        message: str = "Submission was cancelled",
        step: Optional[str] = None,
        storage_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.step = step
        # Set when the object was already written before the cancellation was seen.
        self.storage_path = storage_path


class UnsupportedMediaTypeError(RecordIngestionError):
    def __init__(self, message: str, *, filename: str, content_type: str):
        super().__init__(message)
        self.filename = filename
        self.content_type = content_type


class FileTooLargeError(RecordIngestionError):
    def __init__(self, message: str, *, filename: str, size: int, limit: int):
        super().__init__(message)
        self.filename = filename
        self.size = size
        self.limit = limit
