from __future__ import annotations

from typing import Optional

import structlog

from medrecords.core.observability.ingestion_logging import compact_error
from medrecords.core.observability.timing import elapsed_ms, perf_now
from medrecords.domain.records.cancellation import SubmissionContext
from medrecords.domain.records.exceptions import AssetUploadError, SubmissionCancelledError
from medrecords.domain.records.models import LocalFile, UploadedAsset
from medrecords.domain.records.ports import ObjectStorePort
from medrecords.domain.records.storage_paths import (
    MonotonicMillisClock,
    build_storage_path,
    default_clock,
)

logger = structlog.get_logger(__name__)


class AssetUploader:
    """Stores one local file and resolves its public locator."""

    def __init__(
        self,
        object_store: ObjectStorePort,
        *,
        path_prefix: str = "records",
        clock: Optional[MonotonicMillisClock] = None,
    ):
        self.object_store = object_store
        self.path_prefix = path_prefix
        self.clock = clock or default_clock

    def derive_path(self, patient_id: str, local_file: LocalFile) -> str:
        # Timestamp is read per file, at upload time.
        return build_storage_path(self.path_prefix, patient_id, self.clock.now_ms(), local_file.filename)

    async def upload(
        self,
        patient_id: str,
        local_file: LocalFile,
        context: Optional[SubmissionContext] = None,
    ) -> UploadedAsset:
        storage_path = self.derive_path(patient_id, local_file)

        if context is not None:
            context.raise_if_cancelled("upload_write")
        started = perf_now()
        try:
            await self.object_store.put(storage_path, local_file.data, local_file.content_type)
        except Exception as exc:
            logger.warning(
                "asset_upload_failed",
                stage="write",
                storage_path=storage_path,
                error=compact_error(exc),
                error_type=type(exc).__name__,
            )
            raise AssetUploadError(
                f"Could not upload {local_file.filename}: {compact_error(exc)}",
                stage="write",
                storage_path=storage_path,
                filename=local_file.filename,
            ) from exc

        if context is not None:
            try:
                context.raise_if_cancelled("upload_resolve")
            except SubmissionCancelledError as exc:
                exc.storage_path = storage_path
                raise
        try:
            public_locator = await self.object_store.resolve_public_url(storage_path)
        except Exception as exc:
            logger.warning(
                "asset_upload_failed",
                stage="resolve",
                storage_path=storage_path,
                error=compact_error(exc),
                error_type=type(exc).__name__,
            )
            raise AssetUploadError(
                f"Uploaded {local_file.filename} but could not resolve its URL: {compact_error(exc)}",
                stage="resolve",
                storage_path=storage_path,
                filename=local_file.filename,
            ) from exc

        if not public_locator:
            raise AssetUploadError(
                f"Uploaded {local_file.filename} but the store returned no URL",
                stage="resolve",
                storage_path=storage_path,
                filename=local_file.filename,
            )

        logger.info(
            "asset_uploaded",
            storage_path=storage_path,
            content_type=local_file.content_type,
            size_bytes=local_file.size,
            duration_ms=elapsed_ms(started),
        )
        return UploadedAsset(
            source_handle=local_file,
            storage_path=storage_path,
            public_locator=public_locator,
        )
