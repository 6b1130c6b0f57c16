"""ChunkVault - persistent batched store for text chunks and their embeddings."""

__version__ = "0.1.0"
__author__ = "ChunkVault Contributors"

from chunkvault.config import Settings, get_settings
from chunkvault.store import ChunkRecord, ChunkStore

__all__ = ["ChunkRecord", "ChunkStore", "Settings", "get_settings", "__version__"]
