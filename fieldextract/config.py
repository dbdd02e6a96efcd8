"""Configuration for the batch field extraction service.

Environment variables (all optional):
 - OPENAI_API_KEY: enables real extraction; without it every document is
   answered with placeholder data.
 - OPENAI_MODEL
 - BATCH_SIZE, MAX_RETRIES, TRANSPORT_MAX_ATTEMPTS
 - INITIAL_DELAY_SECONDS, MAX_DELAY_SECONDS, RATE_LIMIT_DELAY_SECONDS,
   STAGGER_DELAY_SECONDS
 - POLL_INTERVAL_SECONDS, MAX_WAIT_SECONDS
 - MAX_FILE_BYTES, MAX_FILES_PER_REQUEST
 - ALLOWED_ORIGINS (comma separated, ``*`` by default)
 - ENABLE_METRICS
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class AppConfig(BaseSettings):
    openai_api_key: str | None = Field(None, validation_alias='OPENAI_API_KEY')
    openai_model: str = Field('gpt-4o-mini', validation_alias='OPENAI_MODEL')

    batch_size: int = Field(5, ge=1, validation_alias='BATCH_SIZE')
    max_retries: int = Field(3, ge=1, validation_alias='MAX_RETRIES')
    transport_max_attempts: int = Field(3, ge=1, validation_alias='TRANSPORT_MAX_ATTEMPTS')
    initial_delay_seconds: float = Field(1.0, ge=0, validation_alias='INITIAL_DELAY_SECONDS')
    max_delay_seconds: float = Field(30.0, ge=0, validation_alias='MAX_DELAY_SECONDS')
    rate_limit_delay_seconds: float = Field(
        2.0,
        ge=0,
        validation_alias=AliasChoices('RATE_LIMIT_DELAY_SECONDS', 'INTER_BATCH_DELAY_SECONDS'),
    )
    stagger_delay_seconds: float = Field(0.5, ge=0, validation_alias='STAGGER_DELAY_SECONDS')
    poll_interval_seconds: float = Field(3.0, gt=0, validation_alias='POLL_INTERVAL_SECONDS')
    max_wait_seconds: float = Field(300.0, gt=0, validation_alias='MAX_WAIT_SECONDS')

    max_file_bytes: int = Field(512 * 1024 * 1024, ge=1, validation_alias='MAX_FILE_BYTES')
    max_files_per_request: int = Field(100, ge=1, validation_alias='MAX_FILES_PER_REQUEST')

    allowed_origins_raw: str = Field('*', validation_alias='ALLOWED_ORIGINS')
    enable_metrics_raw: str | bool | None = Field(True, validation_alias='ENABLE_METRICS')

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', case_sensitive=False)

    @property
    def allowed_origins(self) -> list[str]:
        origins = [item.strip() for item in self.allowed_origins_raw.split(",")]
        return [origin for origin in origins if origin] or ["*"]

    @property
    def enable_metrics(self) -> bool:
        raw = self.enable_metrics_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def offline_mode(self) -> bool:
        return not (self.openai_api_key or "").strip()

    def validate_required(self) -> None:
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise RuntimeError("MAX_DELAY_SECONDS must be >= INITIAL_DELAY_SECONDS")
        if self.max_wait_seconds < self.poll_interval_seconds:
            raise RuntimeError("MAX_WAIT_SECONDS must be >= POLL_INTERVAL_SECONDS")

    def summary(self) -> dict[str, Any]:
        """Non-secret settings for startup logs."""
        return {
            "offline_mode": self.offline_mode,
            "model": self.openai_model,
            "batch_size": self.batch_size,
            "max_retries": self.max_retries,
            "max_files": self.max_files_per_request,
        }


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()  # type: ignore[call-arg]


__all__ = ["AppConfig", "get_config", "parse_bool"]
