"""Runtime settings, read from DRILLDOWN_* environment variables or a .env file."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DRILLDOWN_", env_file=".env", extra="ignore")

    analytics_db: str | None = None  # None -> in-memory
    crm_db: str | None = None
    sources_dir: Path | None = None  # extra/overriding source yaml
    default_limit: int = Field(default=1000, ge=1, le=10000)
    max_workers: int = Field(default=4, ge=1)
    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    return Settings()
