"""Embedding port interface.

Defines a protocol for text embedding providers and a small DTO for
returning vectors with minimal telemetry. The store never produces vectors
itself; adapters implementing this port are supplied by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence


@dataclass(slots=True)
class EmbeddingResult:
    """Embedding vectors and basic telemetry."""

    embeddings: list[list[float]]
    latency_ms: float = 0.0
    model: str | None = None
    dimensions: int | None = None


class EmbeddingPort(Protocol):
    """Port interface for text embedding services.

    Implementations must return exactly one vector per input text, in input
    order, each of length ``dimensions``.
    """

    def embed_documents(self, texts: Sequence[str], *, dimensions: int) -> EmbeddingResult:
        """Embed chunk texts for storage.

        Args:
            texts: Chunk texts to embed (ordered)
            dimensions: Required output dimension

        Returns:
            EmbeddingResult with vectors and telemetry
        """
        ...
