"""
Application configuration module.

Loads settings from environment variables (or .env file) using pydantic-settings.
All sensitive values (DB credentials, operator key) come from environment — never
hardcoded.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Invoice Financing Ledger.

    Environment variables are loaded automatically from .env if present.
    """

    PROJECT_NAME: str = "Invoice Financing Ledger"
    API_V1_STR: str = "/api/v1"

    # ── Storage ──
    # The ledger runs against an in-memory SQLite database unless told
    # otherwise; flip USE_SQLITE off to back it with PostgreSQL.
    USE_SQLITE: bool = True

    POSTGRES_USER: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_SERVER: str = ""
    POSTGRES_DB: str = ""
    POSTGRES_PORT: int = 5432

    @model_validator(mode="after")
    def _require_pg_credentials_unless_sqlite(self) -> "Settings":
        """Fail fast if PostgreSQL credentials are missing in PostgreSQL mode."""
        if not self.USE_SQLITE:
            missing = [
                name
                for name in (
                    "POSTGRES_USER",
                    "POSTGRES_PASSWORD",
                    "POSTGRES_SERVER",
                    "POSTGRES_DB",
                )
                if not getattr(self, name)
            ]
            if missing:
                vars_list = ", ".join(missing)
                raise ValueError(
                    f"PostgreSQL mode requires these environment variables: "
                    f"{vars_list}.\n\n"
                    f"Set them in a .env file or export them before starting:\n"
                    f"       export POSTGRES_USER=ledger_user\n"
                    f"       export POSTGRES_PASSWORD=ledger_password\n"
                    f"       export POSTGRES_SERVER=127.0.0.1\n"
                    f"       export POSTGRES_DB=ledger_db\n\n"
                    f"Or keep the in-memory ledger:\n"
                    f"       USE_SQLITE=true uvicorn invoice_ledger.main:app"
                )
        return self

    # ── Connection pool tuning (PostgreSQL only) ──
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # seconds to wait for a connection from the pool
    DB_POOL_RECYCLE: int = 1800

    # ── CORS ──
    CORS_ORIGINS: str = "*"

    # ── Logging ──
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_FILE_BACKUP_COUNT: int = 5

    # ── Read cache ──
    CACHE_TTL: float = 30.0
    CACHE_MAX_SIZE: int = 1000
    CACHE_ENABLED: bool = True

    # ── Circuit breaker ──
    CB_FAILURE_THRESHOLD: int = 5
    CB_RECOVERY_TIMEOUT: float = 30.0

    # ── Ledger policy ──
    INVOICE_PAGE_SIZE: int = 50
    DEFAULT_RISK_SCORE: int = 500

    # Operator key for the admin routes (status override, snapshots).
    # Empty means the admin routes refuse every request.
    ADMIN_API_KEY: str = ""

    # Load the demo ledger (see invoice_ledger.seed) at startup.
    SEED_DEMO_DATA: bool = False

    @property
    def DATABASE_URL(self) -> str:
        """Construct the async database DSN.

        Returns an in-memory SQLite URL when ``USE_SQLITE`` is enabled,
        otherwise a PostgreSQL DSN for asyncpg.
        """
        if self.USE_SQLITE:
            return "sqlite+aiosqlite://"
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
