"""Bounded in-memory cache of store batches with write-back eviction."""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from pydantic import ValidationError

from chunkvault.store.codec import decode_vectors, encode_vectors
from chunkvault.store.errors import (
    ChunkStoreError,
    CorruptStoreError,
    StoreConfigurationError,
)
from chunkvault.store.layout import BatchLayout
from chunkvault.store.models import DEFAULT_MAX_CACHED_BATCHES, ChunkRecord
from chunkvault.utils.atomic import atomic_write_bytes, atomic_write_json
from chunkvault.utils.paths import quarantine_file

logger = logging.getLogger(__name__)

BatchData = tuple[list[ChunkRecord], list[np.ndarray]]


@dataclass(slots=True)
class CachedBatch:
    """In-memory copy of one batch; ``dirty`` until written to disk."""

    records: list[ChunkRecord]
    vectors: list[np.ndarray]
    dirty: bool = True


class BatchCache:
    """Hold up to ``max_cached_batches`` batches keyed by batch number.

    Entries are ordered oldest first; reading a cached entry refreshes it.
    Batches loaded from disk are *not* cached by :meth:`get`: callers that
    modify a batch hand it back with :meth:`put`. Eviction always writes a
    dirty batch before dropping it, since the cache may hold the only copy of
    records appended since the last flush.
    """

    def __init__(
        self,
        layout: BatchLayout,
        *,
        max_cached_batches: int = DEFAULT_MAX_CACHED_BATCHES,
        strict: bool = False,
    ) -> None:
        if max_cached_batches < 1:
            raise ValueError(
                f"max_cached_batches must be at least 1; received {max_cached_batches}"
            )
        self.layout = layout
        self.max_cached_batches = int(max_cached_batches)
        self.strict = strict
        self._entries: OrderedDict[int, CachedBatch] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, batch_number: object) -> bool:
        return batch_number in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._entries))

    def is_dirty(self, batch_number: int) -> bool:
        entry = self._entries.get(batch_number)
        return entry is not None and entry.dirty

    def get(self, batch_number: int) -> BatchData:
        """Return the cached batch, or load it from disk without caching it."""
        entry = self._entries.get(batch_number)
        if entry is not None:
            self._entries.move_to_end(batch_number)
            return entry.records, entry.vectors
        return self.load(batch_number)

    def put(
        self, batch_number: int, records: list[ChunkRecord], vectors: list[np.ndarray]
    ) -> None:
        """Insert or replace a batch and mark it dirty."""
        if len(records) != len(vectors):
            raise ChunkStoreError(
                f"Batch {batch_number} has {len(records)} records but {len(vectors)} vectors"
            )
        self._entries[batch_number] = CachedBatch(records=records, vectors=vectors)
        self._entries.move_to_end(batch_number)

    def evict_except(self, keep_batch_number: int) -> list[int]:
        """Write back and drop the oldest batches once the bound is reached.

        At most ``max_cached_batches - 1`` entries remain afterwards, not
        counting ``keep_batch_number`` when it cannot be evicted.

        Returns:
            Batch numbers evicted, oldest first
        """
        total = len(self._entries)
        if total < self.max_cached_batches:
            return []

        candidates = [n for n in self._entries if n != keep_batch_number]
        to_evict = candidates[: max(0, total - self.max_cached_batches + 1)]

        for batch_number in to_evict:
            entry = self._entries[batch_number]
            if entry.dirty:
                self.write(batch_number, entry.records, entry.vectors)
                entry.dirty = False
            del self._entries[batch_number]
            logger.debug("Evicted batch %d from cache", batch_number)

        return to_evict

    def flush_all(self) -> int:
        """Write every dirty entry to disk and empty the cache.

        Returns:
            Number of batches written
        """
        written = 0
        for batch_number, entry in self._entries.items():
            if not entry.dirty:
                continue
            self.write(batch_number, entry.records, entry.vectors)
            entry.dirty = False
            written += 1

        self._entries.clear()
        if written:
            logger.debug("Flushed %d cached batches", written)
        return written

    def clear(self) -> None:
        """Drop all entries without writing them."""
        self._entries.clear()

    # Disk I/O -----------------------------------------------------------------

    def write(
        self, batch_number: int, records: list[ChunkRecord], vectors: list[np.ndarray]
    ) -> None:
        """Persist one batch, metadata half first, each half atomically."""
        if len(records) != len(vectors):
            raise ChunkStoreError(
                f"Batch {batch_number} has {len(records)} records but {len(vectors)} vectors"
            )

        chunk_path, embedding_path = self.layout.batch_paths(batch_number)
        payload = encode_vectors(vectors, self.layout.dimension)
        atomic_write_json(chunk_path, {"chunks": [record.to_json_dict() for record in records]})
        atomic_write_bytes(embedding_path, payload)

    def load(self, batch_number: int) -> BatchData:
        """Read one batch from disk.

        Missing batches are empty. A batch where either half is unreadable, or
        where the halves disagree in length, is treated as empty as a whole.

        Raises:
            StoreConfigurationError: if a batch exists on disk but the layout has
                no dimension to decode its vectors with. The files are left alone.
        """
        chunk_path, embedding_path = self.layout.batch_paths(batch_number)
        chunk_exists = chunk_path.exists()
        embedding_exists = embedding_path.exists()

        if not chunk_exists and not embedding_exists:
            logger.debug("Batch %d not on disk; treating as empty", batch_number)
            return [], []

        if not self.layout.dimension:
            raise StoreConfigurationError(
                f"Cannot read batch {batch_number}: store dimension not set; "
                "call set_config() first"
            )

        if not chunk_exists or not embedding_exists:
            present = chunk_path if chunk_exists else embedding_path
            return self._corrupt(batch_number, [present], "other half of the batch is missing")

        try:
            records = self.read_records(chunk_path)
        except (OSError, ValueError, TypeError, KeyError) as exc:
            return self._corrupt(batch_number, [chunk_path], str(exc))

        try:
            matrix = decode_vectors(embedding_path.read_bytes(), self.layout.dimension)
        except (OSError, CorruptStoreError) as exc:
            return self._corrupt(batch_number, [embedding_path], str(exc))

        if len(records) != matrix.shape[0]:
            return self._corrupt(
                batch_number,
                [chunk_path, embedding_path],
                f"{len(records)} records but {matrix.shape[0]} vectors",
            )

        return records, list(matrix)

    @staticmethod
    def read_records(path: Path) -> list[ChunkRecord]:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        chunks = data["chunks"]
        if not isinstance(chunks, list):
            raise TypeError("'chunks' must be a list")
        try:
            return [ChunkRecord.model_validate(item) for item in chunks]
        except ValidationError as exc:
            raise ValueError(f"invalid chunk record: {exc.error_count()} errors") from exc

    def _corrupt(self, batch_number: int, paths: list[Path], reason: str) -> BatchData:
        if self.strict:
            raise CorruptStoreError(
                f"Batch {batch_number} is unreadable: {reason}", path=paths[0]
            )

        logger.warning(
            "Batch %d is corrupted (%s); treating it as empty.", batch_number, reason
        )
        for path in paths:
            try:
                backup = quarantine_file(path)
            except OSError:
                logger.debug("Failed to back up corrupted batch file %s", path)
                continue
            if backup is not None:
                logger.warning("Moved corrupted batch file to %s", backup)
        return [], []
