from __future__ import annotations

import asyncio
from typing import Optional
from uuid import uuid4

from medrecords.domain.records.exceptions import SubmissionCancelledError


class SubmissionContext:
    """
    Per-submission handle threaded through the uploader and committer.

    Nothing cancels a submission unless `cancel()` is called; an in-flight
    network call is never interrupted, the check happens before the next step.
    """

    def __init__(self, submission_id: Optional[str] = None):
        self.submission_id = submission_id or str(uuid4())
        self._cancelled = asyncio.Event()
        self.cancel_reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self, reason: str = "superseded") -> None:
        if not self._cancelled.is_set():
            self.cancel_reason = reason
            self._cancelled.set()

    def raise_if_cancelled(self, step: str) -> None:
        if self._cancelled.is_set():
            raise SubmissionCancelledError(
                f"Submission cancelled before {step} ({self.cancel_reason})",
                step=step,
            )
