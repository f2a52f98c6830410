"""
Configuration and environment variables for the Arrangement Engine.
"""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings."""

    # Service Configuration
    service_name: str = Field(default="arrangement-engine")
    service_version: str = Field(default="1.0.0")

    # Logging
    log_level: str = Field(default="INFO")
    log_sample_rate: float = Field(default=1.0)
    log_json: bool = Field(default=True)

    # Business Rules Configuration
    enforce_status_guard: bool = Field(default=True)
    absorb_rounding_remainder: bool = Field(default=True)
    upcoming_days_ahead: int = Field(default=7)
    week_starts_on: int = Field(default=0)  # 0 = Monday
    date_display_format: str = Field(default="%d/%m/%Y")

    @field_validator("log_sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Log sample rate must be between 0.0 and 1.0")
        return v

    @field_validator("week_starts_on")
    @classmethod
    def validate_week_start(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("week_starts_on must be between 0 (Monday) and 6 (Sunday)")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "env_prefix": "ARRANGEMENT_",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get engine settings."""
    return settings
