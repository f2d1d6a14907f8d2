from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings.

    Notes:
    - Defaults are local and deterministic (SQLite catalog, demo auth).
    - Every value can be overridden with an `ORGSCOPE_` environment variable.
    - Identity provider settings live in `EntraConfig` (AZURE_* variables).
    """

    model_config = SettingsConfigDict(env_prefix="ORGSCOPE_", extra="ignore")

    db_url: str | None = None
    scope_config_path: str | None = None
    log_level: str = "INFO"

    # "demo": bearer token at login is an integer employee id.
    # "entra": bearer token at login is an Entra ID access token.
    auth_mode: Literal["demo", "entra"] = "demo"
    directory_source: Literal["database", "graph"] = "database"
    seed_demo_data: bool = True

    # Directory snapshot
    directory_ttl_seconds: int = 300
    directory_max_stale_seconds: int = 3600
    directory_refresh_interval_seconds: float = 60.0

    # Transient upstream retries (directory and token service)
    retry_max_attempts: int = 3
    retry_backoff_seconds: float = 1.0

    # Session lifecycle
    token_refresh_threshold_seconds: int = 300
    token_max_consecutive_failures: int = 3
    session_idle_timeout_seconds: int = 8 * 60 * 60
    token_refresh_interval_seconds: float = 30.0
    demo_token_lifetime_seconds: int = 3600

    # Scope lifecycle
    scope_ttl_seconds: int = 900

    min_cohort_size: int = 6

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "orgscope.db"
        return f"sqlite:///{db_path}"

    def resolved_scope_config_path(self) -> Path:
        if self.scope_config_path:
            return Path(self.scope_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "scope_config.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
