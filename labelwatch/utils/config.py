"""
Configuration management for LabelWatch.

Uses pydantic-settings to load configuration from environment variables
and .env files.
"""

import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_NAME = "LabelWatch"
PID_FILE_NAME = "labelwatch.pid"
LOG_FILE_NAME = "labelwatch.log"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Folder Configuration
    listen_folder: Path = Path.home() / "Documents" / f"{APP_NAME} Auto Converter"
    output_folder: Optional[Path] = None
    file_extensions: str = ".txt,.prn"

    # Label Defaults
    default_width_mm: float = 100.0
    default_height_mm: float = 150.0
    default_dpi: int = 203
    default_unit: str = "mm"

    # Queue Configuration
    max_concurrent_files: int = 1
    max_retries: int = 3
    retry_delay_ms: int = 2000
    idle_poll_ms: int = 1000

    # Monitor Configuration
    settle_delay_ms: int = 500
    use_polling_observer: bool = False

    # Daemon Configuration
    pid_dir: Optional[Path] = None
    start_timeout_seconds: float = 30.0
    stop_timeout_seconds: float = 5.0

    # Labelary Configuration
    labelary_url: str = "http://api.labelary.com/v1/printers"
    labelary_timeout: float = 60.0

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_prefix="LABELWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def get_file_extensions(self) -> set[str]:
        """Parse file extensions into a lowercase set with leading dots."""
        extensions = set()
        for ext in self.file_extensions.split(','):
            ext = ext.strip().lower()
            if not ext:
                continue
            extensions.add(ext if ext.startswith('.') else f".{ext}")
        return extensions

    def get_pid_dir(self) -> Path:
        """Directory holding the daemon record file."""
        if self.pid_dir is not None:
            return Path(self.pid_dir).expanduser()
        return default_pid_dir()

    def get_log_file(self) -> Path:
        """Log file used by the background watch process."""
        if self.log_file is not None:
            return Path(self.log_file).expanduser()
        return self.get_pid_dir() / LOG_FILE_NAME


def default_pid_dir() -> Path:
    """
    Platform default location for the daemon record.

    Windows uses the temp directory. Unix-like systems use /var/run when it
    is writable, then $XDG_RUNTIME_DIR, then the temp directory.
    """
    if os.name == "nt":
        return Path(tempfile.gettempdir())

    run_dir = Path("/var/run")
    if run_dir.is_dir() and os.access(run_dir, os.W_OK):
        return run_dir

    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir and Path(runtime_dir).is_dir():
        return Path(runtime_dir)

    return Path(tempfile.gettempdir())


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
