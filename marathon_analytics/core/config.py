"""
Centralized configuration management with validation.

Settings are loaded from the environment (and an optional .env file).
Only the report/CLI layer reads them; the analytics services receive
every threshold and window as an explicit argument.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")

    # Personalisation fallback when the profile carries no heart-rate data
    DEFAULT_THRESHOLD_HR: int = Field(default=170, ge=100, le=220)

    # Most recent activities handed to the engines
    MAX_ACTIVITIES: int = Field(default=1000, ge=1)

    # Training load window; lead-in days are computed but not reported
    LOAD_LEAD_IN_DAYS: int = Field(default=42, ge=0)
    LOAD_WINDOW_DAYS: int = Field(default=90, ge=1)


# Global settings instance
settings = Settings()
