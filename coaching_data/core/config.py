from __future__ import annotations

import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Coaching Data Layer"
    ENV: str = "development"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    DB_CONNECTION: str = "postgresql+asyncpg"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_DATABASE: str = "coaching_data"
    DB_USERNAME: str = "coaching"
    DB_PASSWORD: str = "coaching_secret"

    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        return f"{self.DB_CONNECTION}://{self.DB_USERNAME}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_DATABASE}"

    FIREFLIES_API_KEY: str = "__MISSING__"
    FIREFLIES_API_KEY_COACH_ID: Optional[str] = None  # Coach credited when nobody else matches
    FIREFLIES_API_KEY_LABEL: str = "primary"
    # JSON list of {"api_key": ..., "coach_id": ..., "label": ...}
    FIREFLIES_EXTRA_CREDENTIALS: str = "[]"
    FIREFLIES_BASE_URL: str = "https://api.fireflies.ai/graphql"
    FIREFLIES_WEBHOOK_SECRET: str = "__MISSING__"
    FIREFLIES_LIST_LIMIT: int = 50

    SYNC_CREDENTIAL_DELAY_SECONDS: float = 2.0
    SYNC_INTERVAL_MINUTES: int = 30
    BACKGROUND_SYNC_ENABLED: bool = False

    EMBEDDING_BASE_URL: str = "https://api.openai.com/v1"
    EMBEDDING_API_KEY: str = "__MISSING__"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1536

    CHUNK_SIZE: int = 500
    CHUNK_OVERLAP: int = 50

    SLACK_WEBHOOK_URL: Optional[str] = None

    @field_validator("FIREFLIES_API_KEY")
    @classmethod
    def validate_fireflies_key(cls, v: str) -> str:
        if not v or v == "__MISSING__":
            import os
            if os.getenv("ENV", "development") != "development":
                raise ValueError("FIREFLIES_API_KEY is required and was not provided")
            return "__MISSING__"
        return v

    @field_validator("FIREFLIES_EXTRA_CREDENTIALS")
    @classmethod
    def validate_extra_credentials(cls, v: str) -> str:
        try:
            parsed = json.loads(v or "[]")
        except json.JSONDecodeError as e:
            raise ValueError(f"FIREFLIES_EXTRA_CREDENTIALS must be a JSON list: {e}") from e
        if not isinstance(parsed, list):
            raise ValueError("FIREFLIES_EXTRA_CREDENTIALS must be a JSON list")
        return v or "[]"


# -----------------------------
# Explicit sync configuration
# -----------------------------

class Credential(BaseModel):
    """A Fireflies API key, optionally attributed to the coach who owns it."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    coach_id: Optional[str] = None
    label: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.label or f"...{self.api_key[-4:]}"


class SyncConfig(BaseModel):
    """Everything the scheduler and orchestrator need, passed in at construction."""

    model_config = ConfigDict(frozen=True)

    credentials: List[Credential] = []
    credential_delay_seconds: float = 2.0
    list_limit: int = 50
    chunk_size: int = 500
    chunk_overlap: int = 50

    @property
    def default_credential(self) -> Optional[Credential]:
        return self.credentials[0] if self.credentials else None


_credential_list = TypeAdapter(List[Credential])


def build_sync_config(source: Optional[Settings] = None) -> SyncConfig:
    """Build a SyncConfig from application settings."""
    source = source or settings

    credentials: List[Credential] = []
    if source.FIREFLIES_API_KEY and source.FIREFLIES_API_KEY != "__MISSING__":
        credentials.append(
            Credential(
                api_key=source.FIREFLIES_API_KEY,
                coach_id=source.FIREFLIES_API_KEY_COACH_ID,
                label=source.FIREFLIES_API_KEY_LABEL,
            )
        )
    credentials.extend(_credential_list.validate_json(source.FIREFLIES_EXTRA_CREDENTIALS or "[]"))

    return SyncConfig(
        credentials=credentials,
        credential_delay_seconds=source.SYNC_CREDENTIAL_DELAY_SECONDS,
        list_limit=source.FIREFLIES_LIST_LIMIT,
        chunk_size=source.CHUNK_SIZE,
        chunk_overlap=source.CHUNK_OVERLAP,
    )


settings = Settings()
