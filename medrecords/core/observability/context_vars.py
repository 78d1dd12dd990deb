from contextvars import ContextVar
from typing import Optional

# Context Variables for the submission domain
subject_id_ctx: ContextVar[Optional[str]] = ContextVar("subject_id", default=None)
patient_id_ctx: ContextVar[Optional[str]] = ContextVar("patient_id", default=None)
submission_id_ctx: ContextVar[Optional[str]] = ContextVar("submission_id", default=None)


def get_subject_id() -> Optional[str]:
    return subject_id_ctx.get()


def get_patient_id() -> Optional[str]:
    return patient_id_ctx.get()


def get_submission_id() -> Optional[str]:
    return submission_id_ctx.get()
