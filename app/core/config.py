from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = APP_DIR.parent
STORAGE_ROOT = PROJECT_ROOT / "storage"
JOB_MANIFEST_NAME = "job.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", extra="ignore")

    app_name: str = "Image Randomizer Service"
    storage_root: Path = STORAGE_ROOT
    source_dir: Path = Field(default_factory=lambda: STORAGE_ROOT / "sources")
    store_path: Path = Field(default_factory=lambda: STORAGE_ROOT / "store.json")

    imagemagick_binary: str = "magick"
    exiftool_binary: str = "exiftool"
    tool_timeout: float = 120.0

    default_folder_count: int = 3
    channel_retire_delay: float = 60.0
    session_retention: float = 120.0

    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = False

    # Cleanup intervals (in seconds)
    temp_cleanup_interval: int = 60 * 30
    temp_file_max_age: int = 60 * 60
    finished_job_retention: int = 60 * 60 * 12

    log_level: str = "INFO"
    log_format: str = "simple"

    @property
    def jobs_root(self) -> Path:
        return self.storage_root / "jobs"

    @property
    def temp_root(self) -> Path:
        return self.storage_root / "temp"

    def ensure_directories(self) -> None:
        for directory in (self.storage_root, self.jobs_root, self.temp_root, self.source_dir):
            directory.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
