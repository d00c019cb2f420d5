from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = "dev"
    PORT: int = 8000
    LOG_LEVEL: str = "info"
    ALLOWED_ORIGINS: List[str] = ["*"]

    # Storage
    STORAGE_DIR: Path = Path("./forms")

    # Auto-save: seconds of inactivity before a pending change is saved
    AUTOSAVE_DELAY_SECONDS: float = 30.0

    # Builder sessions idle longer than this are closed
    SESSION_TIMEOUT_HOURS: int = 24

    # Uploads
    MAX_UPLOAD_SIZE_MB: int = 10

    model_config = SettingsConfigDict(
        env_prefix="FORMFLOW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
