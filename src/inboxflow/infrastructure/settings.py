"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "inboxflow"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Durable store (SQLite)
    sqlite_db_path: str = "data/inboxflow.db"

    # Mailbox provider (Nylas v3)
    nylas_api_key: SecretStr | None = None
    nylas_api_uri: str = "https://api.us.nylas.com"
    http_timeout_seconds: float = 30.0

    # LLM Configuration
    llm_provider: Literal["groq", "openai", "anthropic", "local"] = "anthropic"
    groq_api_key: SecretStr | None = None
    openai_api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = None
    anthropic_model: str = "claude-3-haiku-20240307"
    llm_timeout_seconds: float = 60.0
    llm_max_tokens: int = 2048

    # Local vLLM (for local inference)
    vllm_base_url: str = "http://localhost:8000/v1"
    vllm_model_name: str = "gpt-oss-20b"

    # Sync loop
    sync_page_size: int = 50
    sync_interval_minutes: int = 5
    # Comma-separated "user_id:grant_id" pairs synced by the worker
    sync_mailboxes: str = ""

    # Triage batching
    triage_batch_size: int = 5
    triage_batch_delay_ms: int = 500
    dead_letter_threshold: int = Field(default=3, ge=1)

    @computed_field
    @property
    def sync_interval_seconds(self) -> float:
        """Sleep between continuous sync epochs."""
        return self.sync_interval_minutes * 60.0

    @computed_field
    @property
    def triage_batch_delay_seconds(self) -> float:
        return self.triage_batch_delay_ms / 1000.0

    def mailbox_pairs(self) -> list[tuple[str, str]]:
        """Parse ``sync_mailboxes`` into (user_id, grant_id) pairs."""
        pairs = []
        for entry in self.sync_mailboxes.split(","):
            entry = entry.strip()
            if not entry:
                continue
            user_id, sep, grant_id = entry.partition(":")
            if not sep or not user_id or not grant_id:
                raise ValueError(f"Invalid SYNC_MAILBOXES entry: {entry!r} (expected user_id:grant_id)")
            pairs.append((user_id.strip(), grant_id.strip()))
        return pairs


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
