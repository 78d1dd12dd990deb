from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import structlog

from medrecords.application.services.asset_uploader import AssetUploader
from medrecords.application.services.record_committer import RecordCommitter
from medrecords.core.observability.context_vars import (
    patient_id_ctx,
    subject_id_ctx,
    submission_id_ctx,
)
from medrecords.core.observability.ingestion_logging import compact_error, emit_event
from medrecords.core.observability.timing import StepTimer, perf_now
from medrecords.domain.records.cancellation import SubmissionContext
from medrecords.domain.records.exceptions import (
    AssetUploadError,
    AuthenticationRequiredError,
    DraftValidationError,
    RecordCommitError,
    SubmissionCancelledError,
)
from medrecords.domain.records.models import (
    DraftState,
    FailureReason,
    IdentityContext,
    SubmissionOutcome,
    SubmissionProgress,
    SubmissionState,
    UploadedAsset,
)
from medrecords.domain.records.policies import validate_draft
from medrecords.domain.records.ports import IdentityProviderPort, ProgressListener

logger = structlog.get_logger(__name__)

SUCCESS_MESSAGE = "Medical record added successfully!"
SIGNED_OUT_MESSAGE = "You must be logged in to add a medical record."
FAILURE_PREFIX = "Failed to add medical record: "


@dataclass(frozen=True)
class SubmitMedicalRecordCommand:
    draft: DraftState
    identity_provider: IdentityProviderPort
    context: Optional[SubmissionContext] = None


class SubmitMedicalRecordUseCase:
    """
    Runs one submission: validate -> identity gate -> sequential uploads -> commit.

    Every pipeline failure is returned as a failed `SubmissionOutcome`; nothing is
    retried. Objects stored before a failure are left in place unless
    `cleanup_orphans` is set, in which case a best-effort delete is attempted.
    Calling `execute` again with the same draft starts over with fresh paths.
    """

    def __init__(
        self,
        uploader: AssetUploader,
        committer: RecordCommitter,
        *,
        cleanup_orphans: bool = False,
        listener: Optional[ProgressListener] = None,
    ):
        self.uploader = uploader
        self.committer = committer
        self.cleanup_orphans = cleanup_orphans
        self.listener = listener

    def _notify(self, progress: SubmissionProgress) -> None:
        emit_event(
            logger,
            "record_submission_state",
            level="debug",
            state=progress.state.value,
            index=progress.index if progress.state is SubmissionState.UPLOADING else None,
            total=progress.total if progress.state is SubmissionState.UPLOADING else None,
            reason=progress.reason.value if progress.reason else None,
        )
        if self.listener is not None:
            self.listener(progress)

    async def execute(self, cmd: SubmitMedicalRecordCommand) -> SubmissionOutcome:
        context = cmd.context or SubmissionContext()
        submission_token = submission_id_ctx.set(context.submission_id)
        patient_token = patient_id_ctx.set(cmd.draft.patient_id)
        subject_token = subject_id_ctx.set(None)
        try:
            return await self._run(cmd.draft, cmd.identity_provider, context)
        finally:
            subject_id_ctx.reset(subject_token)
            patient_id_ctx.reset(patient_token)
            submission_id_ctx.reset(submission_token)

    async def _run(
        self,
        draft: DraftState,
        identity_provider: IdentityProviderPort,
        context: SubmissionContext,
    ) -> SubmissionOutcome:
        timer = StepTimer()
        files = list(draft.selected_files)
        uploaded: List[UploadedAsset] = []
        logger.info("record_submission_started", file_count=len(files))

        try:
            self._notify(SubmissionProgress(SubmissionState.VALIDATING))
            validate_draft(draft)

            self._notify(SubmissionProgress(SubmissionState.GATING))
            context.raise_if_cancelled("identity")
            identity = await self._gate(identity_provider, timer)
            subject_id_ctx.set(identity.subject_id)

            self._notify(SubmissionProgress(SubmissionState.UPLOADING, index=0, total=len(files)))
            for index, local_file in enumerate(files):
                started = perf_now()
                try:
                    asset = await self.uploader.upload(draft.patient_id, local_file, context)
                except AssetUploadError as exc:
                    if exc.stage == "resolve":
                        uploaded_paths = [item.storage_path for item in uploaded] + [exc.storage_path]
                    else:
                        uploaded_paths = [item.storage_path for item in uploaded]
                    timer.record("upload", started)
                    orphans = await self._handle_orphans(uploaded_paths)
                    return self._failed(
                        FailureReason.UPLOAD,
                        FAILURE_PREFIX + exc.message,
                        timer,
                        orphans,
                        failed_index=index,
                    )
                timer.record("upload", started)
                uploaded.append(asset)
                self._notify(
                    SubmissionProgress(SubmissionState.UPLOADING, index=index + 1, total=len(files))
                )

            self._notify(SubmissionProgress(SubmissionState.COMMITTING))
            started = perf_now()
            try:
                record = await self.committer.commit(
                    draft,
                    [asset.public_locator for asset in uploaded],
                    identity.subject_id,
                    context,
                )
            except RecordCommitError as exc:
                timer.record("commit", started)
                orphans = await self._handle_orphans([asset.storage_path for asset in uploaded])
                return self._failed(FailureReason.COMMIT, FAILURE_PREFIX + exc.message, timer, orphans)
            timer.record("commit", started)

        except DraftValidationError as exc:
            return self._failed(FailureReason.VALIDATION, exc.message, timer, ())
        except AuthenticationRequiredError as exc:
            return self._failed(FailureReason.AUTH, exc.message, timer, ())
        except SubmissionCancelledError as exc:
            written = [asset.storage_path for asset in uploaded]
            if exc.storage_path:
                written.append(exc.storage_path)
            orphans = await self._handle_orphans(written)
            return self._failed(FailureReason.CANCELLED, exc.message, timer, orphans)

        draft.discard()
        self._notify(SubmissionProgress(SubmissionState.SUCCEEDED))
        logger.info(
            "record_submission_succeeded",
            record_id=record.id,
            file_count=len(record.file_urls),
            steps_ms=timer.steps,
            duration_ms=timer.total_ms,
        )
        return SubmissionOutcome(status=SubmissionState.SUCCEEDED, message=SUCCESS_MESSAGE, record=record)

    async def _gate(self, identity_provider: IdentityProviderPort, timer: StepTimer) -> IdentityContext:
        started = perf_now()
        try:
            identity = await identity_provider.current_identity()
        except Exception as exc:
            logger.warning(
                "identity_lookup_failed",
                error=compact_error(exc),
                error_type=type(exc).__name__,
            )
            raise AuthenticationRequiredError(
                f"Could not verify your session ({compact_error(exc)}). Please sign in again.",
            ) from exc
        finally:
            timer.record("identity", started)
        if identity is None or not str(identity.subject_id or "").strip():
            raise AuthenticationRequiredError(SIGNED_OUT_MESSAGE)
        return identity

    async def _handle_orphans(self, storage_paths: List[str]) -> tuple[str, ...]:
        if not storage_paths:
            return ()
        if not self.cleanup_orphans:
            logger.warning("orphaned_assets_left", orphan_count=len(storage_paths), storage_paths=storage_paths)
            return tuple(storage_paths)
        try:
            await self.uploader.object_store.remove(list(storage_paths))
        except Exception as exc:
            logger.error(
                "orphan_cleanup_failed",
                orphan_count=len(storage_paths),
                storage_paths=storage_paths,
                error=compact_error(exc),
            )
            return tuple(storage_paths)
        logger.info("orphan_cleanup_completed", orphan_count=len(storage_paths))
        return ()

    def _failed(
        self,
        reason: FailureReason,
        message: str,
        timer: StepTimer,
        orphans: tuple[str, ...] | List[str],
        failed_index: Optional[int] = None,
    ) -> SubmissionOutcome:
        self._notify(SubmissionProgress(SubmissionState.FAILED, reason=reason))
        emit_event(
            logger,
            "record_submission_failed",
            level="info" if reason in {FailureReason.VALIDATION, FailureReason.AUTH} else "error",
            reason=reason.value,
            error=compact_error(message),
            failed_index=failed_index,
            orphan_count=len(orphans),
            steps_ms=timer.steps,
            duration_ms=timer.total_ms,
        )
        return SubmissionOutcome(
            status=SubmissionState.FAILED,
            message=message,
            reason=reason,
            orphaned_paths=tuple(orphans),
        )
