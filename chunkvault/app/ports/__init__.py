"""Port interfaces for the ChunkVault application layer.

Services depend on these protocols, never on concrete implementations.
"""

__all__ = [
    "ChunkStorePort",
    "EmbeddingPort",
    "EmbeddingResult",
]

from chunkvault.app.ports.chunk_store import ChunkStorePort
from chunkvault.app.ports.embedding import EmbeddingPort, EmbeddingResult
