"""
Configuration settings for datamart-ingest.

Uses Pydantic Settings to load environment variables for the data-mart
endpoint, HTTP timeouts, fetch concurrency, the strictness policies applied to
responses, and logging.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATAMART_BASE_URL = "https://mpr.datamart.ams.usda.gov/services/v1.1/reports"


class Settings(BaseSettings):
    # Data-mart endpoint
    datamart_base_url: str = Field(DATAMART_BASE_URL, alias="DATAMART_BASE_URL")
    schema_path: Optional[Path] = Field(None, alias="DATAMART_SCHEMA_PATH")
    user_agent: str = Field("datamart-ingest/0.1", alias="USER_AGENT")

    # HTTP transport; the data-mart is slow, so reads get a long timeout
    http_connect_timeout: float = Field(10.0, alias="HTTP_CONNECT_TIMEOUT", gt=0)
    http_read_timeout: float = Field(120.0, alias="HTTP_READ_TIMEOUT", gt=0)
    http_retry_attempts: int = Field(3, alias="HTTP_RETRY_ATTEMPTS", ge=1)

    # Fetch pipeline
    fetch_concurrency: int = Field(4, alias="FETCH_CONCURRENCY", ge=1)
    demux_mode: Literal["strict", "lenient"] = Field("strict", alias="DEMUX_MODE")
    duplicate_policy: Literal["strict", "keep_first", "keep_last"] = Field(
        "strict", alias="DUPLICATE_POLICY"
    )
    null_key_policy: Literal["error", "skip"] = Field("error", alias="NULL_KEY_POLICY")
    fail_fast: bool = Field(False, alias="FAIL_FAST")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["DATAMART_BASE_URL", "Settings", "get_settings"]
