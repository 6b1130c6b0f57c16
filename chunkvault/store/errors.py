"""Exception taxonomy for the chunk store."""

from __future__ import annotations

from pathlib import Path


class ChunkStoreError(Exception):
    """Base class for chunk store failures."""


class StoreConfigurationError(ChunkStoreError):
    """Raised when the store is used with an invalid configuration."""


class CorruptStoreError(ChunkStoreError):
    """Raised in strict mode when a persisted file cannot be read back."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class CorruptBatchError(CorruptStoreError):
    """Raised when a vector buffer disagrees with its own header."""
