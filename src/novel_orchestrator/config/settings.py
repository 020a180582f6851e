"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "novel-orchestrator"
    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str = ""
    worker_concurrency: int = Field(default=2, ge=1)
    poll_interval_s: float = Field(default=1.0, gt=0.0)
    worker_error_backoff_s: float = Field(default=5.0, ge=0.0)
    persist_timeout_s: float = Field(default=15.0, gt=0.0)
    max_content_chars: int = Field(default=30000, ge=1)
    default_locale: str = "zh"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_timeout_s: float = Field(default=180.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="NOVEL_ORCHESTRATOR_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_llm_api_key(self) -> str:
        return self.llm_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
