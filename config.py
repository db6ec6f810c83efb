import os
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Payments Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging settings, always written to stderr
    log_level: str = "WARNING"
    log_format: Literal["json", "text"] = "json"

    # Processing settings
    malformed_policy: Literal["abort", "skip"] = "abort"
    remember_ignored_ids: bool = False

    # Security settings
    rate_limit_per_minute: int = 30

    model_config = SettingsConfigDict(
        env_prefix="PAYMENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def skip_malformed(self) -> bool:
        return self.malformed_policy == "skip"


# Environment-specific configurations
class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"
    log_format: Literal["json", "text"] = "text"
    rate_limit_per_minute: int = 100


class ProductionSettings(Settings):
    debug: bool = False
    log_level: str = "WARNING"


class TestingSettings(Settings):
    debug: bool = True
    log_level: str = "WARNING"
    rate_limit_per_minute: int = 1000


def get_settings_for_environment(env: str = "production") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings for the environment named by PAYMENTS_ENV."""
    return get_settings_for_environment(os.getenv("PAYMENTS_ENV", "production"))
