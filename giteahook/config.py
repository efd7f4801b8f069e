"""
Application configuration management.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings loaded from environment variables.

    Repository rules, listen address and log file live in the
    configuration document named by ``config_file``.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITEAHOOK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Configuration document
    config_file: str = "config.json"

    # Application
    log_level: str = "INFO"
    command_timeout_seconds: float = 300.0  # <= 0 disables the bound


# Global settings instance
settings = Settings()
