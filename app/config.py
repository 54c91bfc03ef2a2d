"""Application configuration management."""

import os
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_env_file() -> Optional[Path]:
    """Find .env file in the package directory or the project root."""
    current_dir = os.path.dirname(os.path.abspath(__file__))

    possible_paths = [
        os.path.join(current_dir, ".env"),
        os.path.join(os.path.dirname(current_dir), ".env"),
    ]

    for path_str in possible_paths:
        if os.path.exists(path_str):
            LOGGER.info(f"Found .env file at: {path_str}")
            return Path(path_str)

    return None


ENV_FILE = find_env_file()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Settings
    app_name: str = "Policy Onboarding Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = Field(default=["*"])

    # Supabase Configuration
    supabase_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the Supabase project"
    )
    supabase_anon_key: str = Field(default="", description="Public anon key")
    supabase_service_role_key: str = Field(
        default="",
        description="Service role key used for storage and record writes"
    )
    supabase_jwt_secret: str = Field(
        default="",
        description="Secret used to verify user access tokens"
    )
    supabase_jwt_audience: str = Field(default="authenticated")
    document_bucket: str = Field(
        default="policy-documents",
        description="Storage bucket holding uploaded policy documents"
    )
    records_table: str = Field(default="policies", description="Record store table")
    http_timeout: float = Field(default=30.0, description="Timeout for store calls (seconds)")

    # Extraction Service
    extraction_function: str = Field(
        default="parse-policy-pdf",
        description="Edge function that extracts policy fields from a document"
    )
    extraction_timeout: float = Field(default=120.0)
    extraction_date_format: str = Field(default="%Y-%m-%d")
    max_document_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest document accepted for extraction"
    )
    allowed_document_types: List[str] = Field(
        default=[
            "application/pdf",
            "image/jpeg",
            "image/jpg",
            "image/png",
            "image/webp",
        ]
    )
    allowed_document_extensions: List[str] = Field(
        default=[".pdf", ".jpg", ".jpeg", ".png", ".webp"]
    )

    # Cosmetic progress estimate shown while the extraction call is pending
    progress_start: int = Field(default=40)
    progress_step: int = Field(default=5)
    progress_cap: int = Field(default=85)
    progress_tick_seconds: float = Field(default=0.5)

    # Session-scoped drafts and renewal queues
    session_idle_timeout_seconds: int = Field(
        default=8 * 60 * 60,
        description="Sessions idle for longer than this are purged"
    )

    # Policy Defaults
    default_term_days: int = Field(
        default=364,
        description="Days between active date and expiry date for a new term"
    )

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def functions_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/functions/v1"

    @property
    def rest_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/storage/v1"


settings = Settings()
