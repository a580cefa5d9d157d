from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "BulkIO"
    VERSION: str = "0.1.0"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v

    # Database
    DATABASE_URL: str

    # Redis (Celery broker + health check)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Storage
    STORAGE_PATH: str = "./storage"  # Uploaded import files
    ARTIFACT_ROOT: str = "./out"  # Export artifacts
    REGISTRY_FILE: str = "registry/modules.yaml"  # Module field registry

    # Workers
    RUNNER: str = "thread"  # inline, thread or celery
    RUNNER_MAX_WORKERS: int = 4
    STUCK_JOB_MINUTES: int = 30
    PENDING_DRAIN_MINUTES: int = 10  # PENDING jobs older than this were never dispatched

    # Imports
    CSV_PREVIEW_ROWS: int = 20
    PHONE_DEFAULT_REGION: str = "GH"

    # Scheduled exports
    SCHEDULED_EXPORTS_ENABLED: bool = True
    SCHEDULER_TICK_SECONDS: int = 30
    SCHEDULER_BATCH_SIZE: int = 5
    SCHEDULE_TIMEZONE: str = "UTC"

    # Mail delivery
    SENDGRID_API_KEY: str | None = None
    MAIL_FROM: str | None = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./logs"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    @property
    def preview_rows(self) -> int:
        """Preview row count clamped to [5, 50]."""
        if self.CSV_PREVIEW_ROWS <= 0:
            return 20
        return min(50, max(5, self.CSV_PREVIEW_ROWS))


settings = Settings()
