"""
Configuration for Workflow Scheduler Service
"""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Workflow Scheduler configuration settings
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # Core Service Configuration
    service_name: str = Field(default="workflow_scheduler", description="Service name")
    host: str = Field(default="0.0.0.0", description="Service host")
    port: int = Field(default=8003, description="Service port")
    debug: bool = Field(default=False, description="Debug mode")

    # Supabase Configuration (workflows and execution logs); in-memory stores when unset
    supabase_url: str = Field(
        default="",
        description="Supabase project URL",
        validation_alias=AliasChoices("SUPABASE_URL", "supabase_url"),
    )
    supabase_secret_key: str = Field(
        default="",
        description="Supabase service role secret key",
        validation_alias=AliasChoices("SUPABASE_SECRET_KEY", "SUPABASE_SERVICE_KEY", "supabase_secret_key"),
    )

    # APScheduler Configuration
    scheduler_timezone: str = Field(
        default="UTC",
        description="Scheduler timezone",
        validation_alias=AliasChoices("SCHEDULER_TIMEZONE", "scheduler_timezone"),
    )
    scheduler_max_workers: int = Field(
        default=10,
        description="Upper bound on concurrent runs of one workflow's job",
        validation_alias=AliasChoices("SCHEDULER_MAX_WORKERS", "scheduler_max_workers"),
    )
    allow_overlapping_runs: bool = Field(
        default=True,
        description="Let a workflow's job fire again while its previous run is still in flight",
        validation_alias=AliasChoices("ALLOW_OVERLAPPING_RUNS", "allow_overlapping_runs"),
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Log level",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )
    log_format: str = Field(
        default="simple",
        description="Log format (simple/json/standard)",
        validation_alias=AliasChoices("LOG_FORMAT", "log_format"),
    )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_secret_key)

    @property
    def job_max_instances(self) -> int:
        """APScheduler ``max_instances`` for every workflow job"""
        return self.scheduler_max_workers if self.allow_overlapping_runs else 1


@lru_cache()
def get_settings() -> Settings:
    """Get settings instance (cached)"""
    return Settings()


# Global settings instance
settings = get_settings()
