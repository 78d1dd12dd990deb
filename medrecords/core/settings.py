import logging
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


PROJECT_ROOT = Path(__file__).resolve().parents[2]
ROOT_ENV = PROJECT_ROOT / ".env"
ROOT_ENV_LOCAL = PROJECT_ROOT / ".env.local"


class Settings(BaseSettings):
    """
    Medical records ingestion - Global Configuration Registry
    Centralizes all environment variables using Pydantic Settings.
    """

    model_config = SettingsConfigDict(
        env_file=(str(ROOT_ENV), str(ROOT_ENV_LOCAL)),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Infrastructure
    SUPABASE_URL: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    SUPABASE_SERVICE_KEY: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "SUPABASE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_ANON_KEY"
        ),
    )

    # Storage / records
    MEDICAL_RECORDS_BUCKET: str = "patient_uploads"
    MEDICAL_RECORDS_TABLE: str = "medical_records"
    MEDICAL_RECORDS_PATH_PREFIX: str = "records"
    MEDICAL_RECORDS_FILE_URLS_COLUMN: str = "file_url"
    PATIENTS_TABLE: str = "patients"

    # File selection boundary
    ACCEPTED_MEDIA_TYPES: str = "image/png,image/jpeg"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Failure handling
    ORPHAN_CLEANUP_ENABLED: bool = False

    # API Config
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    APP_ENV: str = "local"

    @field_validator("APP_ENV", "ENVIRONMENT", mode="before")
    @classmethod
    def _normalize_environment_labels(cls, value: str | None) -> str:
        return str(value or "").strip().lower()

    @field_validator("MEDICAL_RECORDS_PATH_PREFIX", mode="before")
    @classmethod
    def _normalize_path_prefix(cls, value: str | None) -> str:
        return str(value or "records").strip().strip("/") or "records"

    @property
    def accepted_media_types(self) -> List[str]:
        return [
            item.strip().lower()
            for item in str(self.ACCEPTED_MEDIA_TYPES or "").split(",")
            if item.strip()
        ]

    @property
    def is_deployed_environment(self) -> bool:
        app_env = self.APP_ENV or self.ENVIRONMENT
        return app_env in {"staging", "production", "prod"}


settings = Settings()  # type: ignore[call-arg]
