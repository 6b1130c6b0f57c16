"""Chunk store port interface."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import numpy as np

from chunkvault.store.models import ChunkRecord, StoreStats


class ChunkStorePort(Protocol):
    """Port interface for persisting (chunk, embedding) pairs.

    Adapter: :class:`chunkvault.store.ChunkStore`.

    Side effects: Reads/writes the store directory.
    """

    @property
    def dimension(self) -> int: ...

    def add_chunk(self, record: ChunkRecord, vector: Sequence[float] | np.ndarray) -> None:
        """Append one record and its vector (buffered until ``save``)."""
        ...

    def remove_chunks_by_source(self, source: str) -> int:
        """Remove every record for ``source``; returns the removed count."""
        ...

    def has_chunks_for_source(self, source: str) -> bool: ...

    def save(self) -> None:
        """Flush buffered appends and metadata to disk."""
        ...

    def get_stats(self) -> StoreStats: ...
