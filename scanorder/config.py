"""Application configuration management."""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    db_url: str = "sqlite:///./data/scanorder.db"

    # Application
    app_name: str = "ScanOrder"
    app_version: str = "1.0.0"
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # File Upload
    max_upload_size_mb: int = 50

    # Catalog browser
    search_limit: int = 50

    # Remote assist (LLM)
    assist_enabled: bool = False
    openai_api_key: Optional[str] = None
    assist_model: str = "gpt-4o-mini"
    assist_max_chars: int = 3000
    assist_timeout_seconds: float = 30.0

    # Security
    cors_origins: str = "*"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
