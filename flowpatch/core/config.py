"""
Application Configuration
"""
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    APP_NAME: str = "Flowpatch"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Workflow store
    STORE_BACKEND: Literal["filesystem", "remote"] = "filesystem"
    WORKFLOWS_PATH: Path = Path.cwd() / "data" / "workflows"

    # Remote automation platform (STORE_BACKEND=remote)
    REMOTE_API_URL: Optional[str] = None
    REMOTE_API_KEY: Optional[str] = None
    REMOTE_TIMEOUT_SECONDS: float = 30.0

    # Post-batch structural validation
    # When True, findings are logged and returned as warnings instead of blocking the save
    SKIP_WORKFLOW_VALIDATION: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[Path] = None


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance
    Using lru_cache ensures settings are loaded once and reused
    """
    return Settings()
