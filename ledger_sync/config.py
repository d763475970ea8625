"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets (bearer tokens, database credentials) come from environment variables
    - get_settings() is cached (lru_cache) — single instance per process
    - Every remote call made by the client has a bounded timeout

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Server and client settings share one class: both entry points live in this
      package and read the same .env during development
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from uuid import UUID

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Server ledger database
    database_url: str = (
        "postgresql+asyncpg://ledger:ledger@db:5432/ledger"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting platforms provide postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_create_tables: bool = False

    # Auth (external collaborator) — bearer token -> owner account id
    api_tokens: dict[str, UUID] = {}

    # API
    cors_origins: list[str] = ["http://localhost:5173"]
    history_default_limit: int = 20
    history_max_limit: int = 100

    # Client
    local_database_url: str = "sqlite+aiosqlite:///ledger_local.db"
    remote_base_url: str = "http://localhost:8080"
    remote_timeout_seconds: float = 10.0
    connectivity_timeout_seconds: float = 2.0
    sync_timeout_seconds: float = 15.0
    history_page_size: int = 100

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
