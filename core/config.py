"""
Centralized configuration management.
All environment variables and analysis tunables are defined here.
"""
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="Bank Ledger Analyzer", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Storage
    storage_path: str = Field(default="exports", alias="STORAGE_PATH")
    database_path: str = Field(default="ledger_settings.db", alias="DATABASE_PATH")
    merchants_file: Optional[str] = Field(default=None, alias="MERCHANTS_FILE")
    max_cached_analyses: int = Field(default=20, alias="MAX_CACHED_ANALYSES")

    # Subscription detection
    subscription_min_interval_days: int = Field(default=25, alias="SUBSCRIPTION_MIN_INTERVAL_DAYS")
    subscription_max_interval_days: int = Field(default=35, alias="SUBSCRIPTION_MAX_INTERVAL_DAYS")
    subscription_min_payments: int = Field(default=2, alias="SUBSCRIPTION_MIN_PAYMENTS")
    subscription_active_days: int = Field(default=45, alias="SUBSCRIPTION_ACTIVE_DAYS")
    foreign_currency_tolerance: float = Field(default=0.02, alias="FOREIGN_CURRENCY_TOLERANCE")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("subscription_min_payments")
    @classmethod
    def validate_min_payments(cls, v):
        """A recurring sequence needs at least two payments."""
        if v < 2:
            raise ValueError("Minimum subscription payments must be at least 2")
        return v

    @field_validator("max_cached_analyses")
    @classmethod
    def validate_cache_size(cls, v):
        if v < 1:
            raise ValueError("At least one analysis must be cached")
        return v

    @field_validator("foreign_currency_tolerance")
    @classmethod
    def validate_tolerance(cls, v):
        if v < 0:
            raise ValueError("Foreign currency tolerance cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_interval_window(self):
        """Validate the monthly interval window is well-formed."""
        if self.subscription_min_interval_days < 1:
            raise ValueError("Minimum interval days must be positive")
        if self.subscription_min_interval_days > self.subscription_max_interval_days:
            raise ValueError("Minimum interval days cannot exceed maximum interval days")
        return self

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        Path(self.storage_path).mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
