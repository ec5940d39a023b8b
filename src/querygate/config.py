"""Runtime settings, read from QUERYGATE_* environment variables or a .env file."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QUERYGATE_",
        env_file=".env",
        extra="ignore",
    )

    # None means the definitions bundled with the package
    definitions_path: Path | None = None

    executor: Literal["duckdb", "clickhouse"] = "duckdb"
    duckdb_path: str | None = None  # None for in-memory
    clickhouse_url: str = "http://localhost:8123"
    clickhouse_user: str = "default"
    clickhouse_password: str = ""
    clickhouse_timeout: float = 30.0

    default_limit: int = 1000
    max_limit: int = 10_000
    batch_default_limit: int = 100

    domain_cache_ttl: int = 300
    domain_cache_stale: int = 60

    # show validation/execution details to api callers instead of generic messages
    debug: bool = False
    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
