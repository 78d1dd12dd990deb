"""
Service container for the medical records API.

Centralizes adapter and service instantiation so routers depend on
one object that tests can replace wholesale.
"""

from typing import Optional

import structlog

from medrecords.application.services.asset_uploader import AssetUploader
from medrecords.application.services.preview_service import PreviewService
from medrecords.application.services.record_committer import RecordCommitter
from medrecords.application.use_cases.submit_medical_record_use_case import (
    SubmitMedicalRecordUseCase,
)
from medrecords.core.settings import Settings, settings as default_settings
from medrecords.domain.records.policies import AcceptedMediaTypes
from medrecords.domain.records.ports import ObjectStorePort, RecordStorePort
from medrecords.infrastructure.supabase.client import reset_async_supabase_client
from medrecords.infrastructure.supabase.identity_provider import SupabaseIdentityProvider
from medrecords.infrastructure.supabase.object_store import SupabaseObjectStore
from medrecords.infrastructure.supabase.record_store import SupabaseRecordStore

logger = structlog.get_logger(__name__)


class ServiceContainer:
    """
    IoC container for the ingestion services.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        object_store: Optional[ObjectStorePort] = None,
        record_store: Optional[RecordStorePort] = None,
    ):
        self.settings = settings or default_settings
        self._object_store = object_store
        self._record_store = record_store
        self._media_policy = None
        self._preview_service = None
        self._uploader = None
        self._committer = None
        self._submit_use_case = None

    @property
    def object_store(self) -> ObjectStorePort:
        if self._object_store is None:
            self._object_store = SupabaseObjectStore(bucket_name=self.settings.MEDICAL_RECORDS_BUCKET)
        return self._object_store

    @property
    def record_store(self) -> RecordStorePort:
        if self._record_store is None:
            self._record_store = SupabaseRecordStore()
        return self._record_store

    @property
    def media_policy(self) -> AcceptedMediaTypes:
        if self._media_policy is None:
            self._media_policy = AcceptedMediaTypes(
                self.settings.accepted_media_types,
                max_bytes=self.settings.MAX_UPLOAD_BYTES,
            )
        return self._media_policy

    @property
    def preview_service(self) -> PreviewService:
        if self._preview_service is None:
            self._preview_service = PreviewService()
        return self._preview_service

    @property
    def uploader(self) -> AssetUploader:
        if self._uploader is None:
            self._uploader = AssetUploader(
                self.object_store,
                path_prefix=self.settings.MEDICAL_RECORDS_PATH_PREFIX,
            )
        return self._uploader

    @property
    def committer(self) -> RecordCommitter:
        if self._committer is None:
            self._committer = RecordCommitter(
                self.record_store,
                collection=self.settings.MEDICAL_RECORDS_TABLE,
                file_urls_column=self.settings.MEDICAL_RECORDS_FILE_URLS_COLUMN,
            )
        return self._committer

    @property
    def submit_use_case(self) -> SubmitMedicalRecordUseCase:
        if self._submit_use_case is None:
            self._submit_use_case = SubmitMedicalRecordUseCase(
                self.uploader,
                self.committer,
                cleanup_orphans=self.settings.ORPHAN_CLEANUP_ENABLED,
            )
        return self._submit_use_case

    def identity_provider_for(self, access_token: Optional[str]) -> SupabaseIdentityProvider:
        return SupabaseIdentityProvider(access_token)

    async def startup(self) -> None:
        if self.settings.is_deployed_environment and not (
            self.settings.SUPABASE_URL and self.settings.SUPABASE_SERVICE_KEY
        ):
            logger.error("supabase_credentials_missing", app_env=self.settings.APP_ENV or self.settings.ENVIRONMENT)
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in staging/production environments."
            )
        logger.info(
            "container_startup",
            bucket=self.settings.MEDICAL_RECORDS_BUCKET,
            table=self.settings.MEDICAL_RECORDS_TABLE,
            orphan_cleanup=self.settings.ORPHAN_CLEANUP_ENABLED,
            accepted_media_types=self.settings.accepted_media_types,
        )

    async def shutdown(self) -> None:
        reset_async_supabase_client()
        logger.info("container_shutdown")
