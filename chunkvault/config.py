"""Configuration management with Pydantic and XDG base directory support."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

from chunkvault.store.models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_CACHED_BATCHES,
    DEFAULT_THRESHOLD,
)
from chunkvault.utils.paths import get_xdg_data_home


class Settings(BaseSettings):
    """ChunkVault configuration settings.

    Precedence: CLI flag > environment variable > .env file > defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHUNKVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Data directories
    data_dir: Path | None = Field(
        default=None,
        description="Override data directory (defaults to XDG_DATA_HOME/chunkvault)",
    )

    store_dir: Path | None = Field(
        default=None,
        description="Override store directory (defaults to <data_dir>/store)",
    )

    # Store layout and memory bound
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE,
        ge=1,
        description="Records per batch file for a newly created store",
    )

    max_cached_batches: int = Field(
        default=DEFAULT_MAX_CACHED_BATCHES,
        ge=1,
        description="Maximum number of batches held in memory before write-back eviction",
    )

    default_threshold: float = Field(
        default=DEFAULT_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Similarity threshold recorded for downstream graph consumers",
    )

    strict: bool = Field(
        default=False,
        description="Fail on corrupt store files instead of resetting them to empty",
    )

    save_every: int = Field(
        default=0,
        ge=0,
        description="Flush the store after this many indexed sources (0 = explicit flush only)",
    )

    log_level: str = Field(
        default="WARNING",
        description="Logging level for the command line tool",
    )

    _resolved_data_dir: Path | None = PrivateAttr(default=None)

    def get_data_dir(self) -> Path:
        """Get the data directory, creating if necessary."""
        if self._resolved_data_dir is not None:
            return self._resolved_data_dir

        data_dir = self.data_dir if self.data_dir else get_xdg_data_home() / "chunkvault"
        data_dir.mkdir(parents=True, exist_ok=True)
        self._resolved_data_dir = data_dir
        return data_dir

    def get_store_dir(self) -> Path:
        """Get the store root directory, creating if necessary."""
        store_dir = self.store_dir if self.store_dir else self.get_data_dir() / "store"
        store_dir.mkdir(parents=True, exist_ok=True)
        return store_dir


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Set the global settings instance (useful for testing)."""
    global _settings
    _settings = settings
