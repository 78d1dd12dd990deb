from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from medrecords.core.observability.correlation import get_correlation_id
from medrecords.domain.records.models import FailureReason


def _error_example(code: str, message: str, details: Any) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": "f6a4c304-1ce0-4cf5-9d8f-5d4deca4f51f",
        }
    }


def _response(description: str, code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "description": description,
        "content": {"application/json": {"example": _error_example(code, message, details)}},
    }


ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: _response("Unauthorized", "AUTH_ERROR", "You must be logged in to add a medical record."),
    409: _response("Conflict", "CANCELLED", "Submission cancelled before commit (superseded)"),
    413: _response("Payload Too Large", "FILE_TOO_LARGE", "scan.png: file is 20971520 bytes, limit is 10485760"),
    415: _response(
        "Unsupported Media Type",
        "UNSUPPORTED_MEDIA_TYPE",
        "report.pdf: unsupported file type 'application/pdf'. Allowed: image/png, image/jpeg",
    ),
    422: _response("Unprocessable Entity", "VALIDATION_ERROR", "Diagnosis is required.", {"field": "diagnosis"}),
    500: _response("Internal Server Error", "INTERNAL_ERROR", "Internal server error"),
    502: _response(
        "Bad Gateway",
        "UPLOAD_ERROR",
        "Failed to add medical record: Could not upload scan.png: Bucket not found",
        {"orphaned_paths": []},
    ),
}


FAILURE_STATUS: dict[FailureReason, tuple[int, str]] = {
    FailureReason.VALIDATION: (422, "VALIDATION_ERROR"),
    FailureReason.AUTH: (401, "AUTH_ERROR"),
    FailureReason.UPLOAD: (502, "UPLOAD_ERROR"),
    FailureReason.COMMIT: (502, "COMMIT_ERROR"),
    FailureReason.CANCELLED: (409, "CANCELLED"),
}


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: Any = None):
        super().__init__(message)
        self.status_code = int(status_code)
        self.code = code
        self.message = message
        self.details = details


async def api_error_exception_handler(_: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "request_id": get_correlation_id(),
            }
        },
    )
