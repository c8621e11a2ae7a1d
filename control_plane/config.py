import warnings
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Cooperative Control Plane"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"

    # Database
    DATABASE_URL: Optional[str] = None   # overrides POSTGRES_* (e.g. sqlite for local runs)
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "coop_control_plane"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800          # 30 minutes
    DB_ECHO: bool = False
    SLOW_QUERY_THRESHOLD_MS: int = 500

    # Store backend: "sql" (SQLAlchemy) or "memory" (in-process, single worker only)
    STORE_BACKEND: str = "sql"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Request deadline applied when the caller sends no X-Request-Timeout header
    DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 10.0

    # ── First super admin (used by scripts/initial_data.py) ──
    FIRST_SUPER_ADMIN_REF: str = "admin@example.com"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Block startup if the deployment is misconfigured in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            if self.STORE_BACKEND != "sql":
                raise ValueError(
                    f"STORE_BACKEND='{self.STORE_BACKEND}' is not durable. "
                    "Use STORE_BACKEND=sql outside development."
                )
            if not self.DATABASE_URL and self.POSTGRES_PASSWORD in ("postgres", ""):
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
            if self.FIRST_SUPER_ADMIN_REF == "admin@example.com":
                warnings.warn(
                    "FIRST_SUPER_ADMIN_REF is still 'admin@example.com'. "
                    "Consider changing it for production.",
                    UserWarning,
                    stacklevel=2,
                )
        if self.STORE_BACKEND not in ("sql", "memory"):
            raise ValueError(f"Unknown STORE_BACKEND '{self.STORE_BACKEND}'")
        if self.MAX_PAGE_SIZE < 1 or self.DEFAULT_PAGE_SIZE < 1:
            raise ValueError("Page sizes must be positive")
        return self

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

settings = Settings()
