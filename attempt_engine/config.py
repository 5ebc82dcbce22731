"""Configuration management for the attempt engine."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ATTEMPT_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Attempt service
    SERVICE_URL: str = "http://localhost:5000/api"
    SERVICE_TOKEN: str = Field(
        default="",
        description="Bearer token of the authenticated student (empty to send no header)",
    )
    REQUEST_TIMEOUT: float = Field(default=15.0, gt=0.0)

    # Auto-submit retry (exponential backoff after a failed timeout submission)
    SUBMIT_RETRY_INITIAL_DELAY: float = Field(default=1.0, gt=0.0)
    SUBMIT_RETRY_BACKOFF_FACTOR: float = Field(default=2.0, ge=1.0)
    SUBMIT_RETRY_MAX_DELAY: float = Field(default=30.0, gt=0.0)

    # Timer display
    LOW_TIME_WARNING_SECONDS: int = Field(default=300, ge=0)

    # Routes handed back to the presentation layer
    RESULTS_ROUTE: str = "/student/results/{test_id}"
    DASHBOARD_ROUTE: str = "/student/dashboard"

    # Telemetry
    TELEMETRY_ENABLED: bool = True

    def results_route(self, test_id: str) -> str:
        return self.RESULTS_ROUTE.format(test_id=test_id)


# Global settings instance
settings = Settings()
