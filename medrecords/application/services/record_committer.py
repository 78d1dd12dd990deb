from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog

from medrecords.core.observability.ingestion_logging import compact_error
from medrecords.domain.records.cancellation import SubmissionContext
from medrecords.domain.records.exceptions import RecordCommitError
from medrecords.domain.records.models import RECORD_FIELDS, DraftState, PersistedRecord
from medrecords.domain.records.ports import RecordStorePort

logger = structlog.get_logger(__name__)


class RecordCommitter:
    """Writes one medical record row in a single insert call."""

    def __init__(
        self,
        record_store: RecordStorePort,
        *,
        collection: str = "medical_records",
        file_urls_column: str = "file_url",
    ):
        self.record_store = record_store
        self.collection = collection
        self.file_urls_column = file_urls_column

    def build_document(self, draft: DraftState, asset_locators: List[str], created_by: str) -> Dict[str, Any]:
        document: Dict[str, Any] = {"patient_id": draft.patient_id}
        for name in RECORD_FIELDS:
            document[name] = draft.fields.get(name, "")
        document[self.file_urls_column] = list(asset_locators)
        document["created_by"] = created_by
        return document

    async def commit(
        self,
        draft: DraftState,
        asset_locators: List[str],
        created_by: str,
        context: Optional[SubmissionContext] = None,
    ) -> PersistedRecord:
        document = self.build_document(draft, asset_locators, created_by)

        if context is not None:
            context.raise_if_cancelled("commit")
        try:
            row = await self.record_store.insert(self.collection, document)
        except Exception as exc:
            logger.warning(
                "record_commit_failed",
                collection=self.collection,
                error=compact_error(exc),
                error_type=type(exc).__name__,
            )
            raise RecordCommitError(f"Could not save medical record: {compact_error(exc)}") from exc

        row = row or {}
        record = PersistedRecord(
            patient_id=draft.patient_id,
            fields={name: document[name] for name in RECORD_FIELDS},
            file_urls=list(asset_locators),
            created_by=created_by,
            id=str(row["id"]) if row.get("id") is not None else None,
            created_at=str(row["created_at"]) if row.get("created_at") is not None else None,
        )
        logger.info("record_committed", record_id=record.id, file_count=len(record.file_urls))
        return record
