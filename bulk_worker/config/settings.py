from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "bulk_worker"
    db_username: str = "bulk_worker"
    db_password: str = "secret"
    db_pool_min_size: int = Field(default=1, ge=1)
    db_pool_max_size: int = Field(default=10, ge=1)

    files_root: str = "/app/files"
    error_reports_dir: str = "/app/files/error_reports"

    queue_poll_interval_seconds: float = Field(default=5, gt=0)
    queue_visibility_timeout_seconds: int = Field(default=900, gt=0)
    claim_stale_after_seconds: int = Field(default=1800, gt=0)

    retry_enabled: bool = True
    retry_max_attempts: int = Field(default=3, ge=0, le=100)
    retry_initial_delay_ms: int = Field(default=30000, ge=0)
    retry_max_delay_ms: int = Field(default=300000, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1.0)
    retry_infrastructure_max_attempts: int = Field(default=3, ge=0, le=100)
    retry_schedule_interval_seconds: float = Field(default=60, gt=0)

    resume_enabled: bool = True
    resume_schedule_interval_seconds: float = Field(default=30, gt=0)
    resume_manual_pauses: bool = False
