"""Persistent batched store of (chunk record, embedding vector) pairs.

Storage structure::

    <root>/
      config.json              - dimension, threshold, version, timestamps
      index.json               - chunk count and batch size
      chunks/batch-0000.json   - records 0 .. batch_size-1
      embeddings/batch-0000.bin

Appends are buffered in a bounded :class:`BatchCache` and only become durable
on :meth:`ChunkStore.save` (or when eviction writes a batch back). Removing a
source rewrites every batch so survivors stay contiguous and in order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import numpy as np
from pydantic import BaseModel, ValidationError

from chunkvault.store.cache import BatchCache
from chunkvault.store.codec import as_vector_matrix, decode_vectors
from chunkvault.store.errors import CorruptStoreError, StoreConfigurationError
from chunkvault.store.layout import BatchLayout
from chunkvault.store.models import (
    CONFIG_VERSION,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_CACHED_BATCHES,
    ChunkRecord,
    StoreConfig,
    StoreIndex,
    StoreStats,
    VerifyReport,
    now_ms,
)
from chunkvault.utils.atomic import atomic_write_json
from chunkvault.utils.paths import quarantine_file

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


@dataclass(slots=True)
class GraphInputs:
    """Full export handed to a graph or index consumer."""

    chunks: list[ChunkRecord]
    embeddings: np.ndarray
    dimension: int
    threshold: float


class ChunkStore:
    """Folder-backed store for chunk records and their embeddings.

    Args:
        root: Store directory (created if missing)
        batch_size: Records per batch for a fresh store. An existing store
            keeps the batch size recorded in its ``index.json``.
        max_cached_batches: Upper bound on batches held in memory
        strict: Raise :class:`CorruptStoreError` on unreadable files instead
            of resetting them to empty
    """

    def __init__(
        self,
        root: Path,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_cached_batches: int = DEFAULT_MAX_CACHED_BATCHES,
        strict: bool = False,
    ) -> None:
        if batch_size < 1:
            raise StoreConfigurationError(f"batch_size must be at least 1; received {batch_size}")

        self.root = Path(root)
        self.strict = strict
        self._default_batch_size = int(batch_size)

        self.layout = BatchLayout(self.root, batch_size=batch_size)
        self.layout.ensure_directories()

        self._config = self._load_config()
        self._index = self._load_index()

        if self._index.batch_size != self._default_batch_size:
            logger.info(
                "Store %s uses batch size %d from its index (requested %d)",
                self.root,
                self._index.batch_size,
                self._default_batch_size,
            )
        self.layout.batch_size = self._index.batch_size
        self.layout.dimension = self._config.dimension

        self.cache = BatchCache(
            self.layout, max_cached_batches=max_cached_batches, strict=strict
        )

    def __len__(self) -> int:
        return self._index.chunk_count

    def __repr__(self) -> str:
        return (
            f"ChunkStore(root={str(self.root)!r}, chunk_count={self._index.chunk_count}, "
            f"batch_size={self._index.batch_size}, dimension={self._config.dimension})"
        )

    # Metadata files -------------------------------------------------------------

    @staticmethod
    def _read_model(path: Path, model: type[_ModelT]) -> _ModelT:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        return model.model_validate(data)

    def _load_model(self, path: Path, model: type[_ModelT], label: str) -> _ModelT | None:
        """Read ``path`` into ``model``; ``None`` if absent or recovered from corruption."""
        if not path.exists():
            logger.debug("No %s at %s; starting fresh", label, path)
            return None

        try:
            return self._read_model(path, model)
        except (OSError, ValueError, ValidationError) as exc:
            reason = _first_line(exc)
            if self.strict:
                raise CorruptStoreError(
                    f"Store {label} {path} is unreadable: {reason}", path=path
                ) from exc

            logger.warning("Store %s %s is corrupted (%s); creating fresh.", label, path, reason)
            try:
                quarantine_file(path)
            except OSError:
                logger.debug("Failed to back up corrupted %s %s", label, path)
            return None

    def _load_config(self) -> StoreConfig:
        path = self.layout.config_path
        if path.exists():
            try:
                with open(path, encoding="utf-8") as fh:
                    version = json.load(fh).get("version")
            except (OSError, ValueError, AttributeError):
                version = CONFIG_VERSION  # let _load_model report the corruption
            if version != CONFIG_VERSION:
                logger.info(
                    "Store config version mismatch (%s != %s); creating fresh",
                    version,
                    CONFIG_VERSION,
                )
                return StoreConfig()

        return self._load_model(path, StoreConfig, "config") or StoreConfig()

    def _load_index(self) -> StoreIndex:
        loaded = self._load_model(self.layout.index_path, StoreIndex, "index")
        return loaded or self._empty_index()

    def _empty_index(self) -> StoreIndex:
        return StoreIndex(chunk_count=0, batch_size=self._default_batch_size)

    def _save_config(self) -> None:
        self._config.updated_at = now_ms()
        atomic_write_json(self.layout.config_path, self._config.to_json_dict())

    def _save_index(self) -> None:
        self._index.last_updated = now_ms()
        atomic_write_json(self.layout.index_path, self._index.to_json_dict())

    # Configuration --------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self._config.dimension

    @property
    def batch_size(self) -> int:
        return self._index.batch_size

    @property
    def chunk_count(self) -> int:
        return self._index.chunk_count

    @property
    def batch_count(self) -> int:
        return self.layout.batch_count(self._index.chunk_count)

    @property
    def cached_batches(self) -> int:
        return len(self.cache)

    def set_config(self, dimension: int, threshold: float) -> None:
        """Update and immediately persist the vector dimension and threshold."""
        if dimension < 0:
            raise StoreConfigurationError(f"dimension must be non-negative; received {dimension}")
        if (
            self._index.chunk_count > 0
            and self._config.dimension
            and dimension != self._config.dimension
        ):
            raise StoreConfigurationError(
                f"Cannot change dimension from {self._config.dimension} to {dimension} "
                f"while the store holds {self._index.chunk_count} records; clear it first"
            )

        self._config.dimension = int(dimension)
        self._config.threshold = float(threshold)
        self.layout.dimension = self._config.dimension
        self._save_config()

    def get_config(self) -> StoreConfig:
        return self._config.model_copy()

    def require_dimension(self, dimension: int | None = None) -> int:
        """Return ``dimension`` or the configured one, refusing zero."""
        dim = self._config.dimension if dimension is None else dimension
        if not dim:
            raise StoreConfigurationError("Store dimension not set; call set_config() first")
        return dim

    def _require_readable(self) -> None:
        # Batches on disk cannot be decoded without a dimension.
        if self._index.chunk_count > 0:
            self.require_dimension()

    # Writes ---------------------------------------------------------------------

    def add_chunk(self, record: ChunkRecord, vector: Sequence[float] | np.ndarray) -> None:
        """Append ``record`` and ``vector`` at the tail of the store.

        The append is buffered in memory; call :meth:`save` to persist it.
        Records for the same source are not deduplicated: remove stale records
        with :meth:`remove_chunks_by_source` before re-adding a source.
        """
        dimension = self.require_dimension()
        row = as_vector_matrix([vector], dimension)[0]

        global_index = self._index.chunk_count
        batch_number = self.layout.batch_number(global_index)

        self.cache.evict_except(batch_number)

        records, vectors = self.cache.get(batch_number)
        records.append(record)
        vectors.append(row)
        self.cache.put(batch_number, records, vectors)

        self._index.chunk_count += 1

    def add_chunks(
        self,
        records: Sequence[ChunkRecord],
        vectors: Sequence[Sequence[float]] | np.ndarray,
    ) -> int:
        """Append records and vectors pairwise; returns the number appended."""
        if len(records) != len(vectors):
            raise StoreConfigurationError(
                f"Got {len(records)} records but {len(vectors)} vectors"
            )
        for record, vector in zip(records, vectors):
            self.add_chunk(record, vector)
        return len(records)

    def remove_chunks_by_source(self, source: str) -> int:
        """Drop every record whose source is ``source`` and compact the store.

        Survivors keep their relative order and are rewritten into fresh
        batches from batch 0; the rewrite touches every batch regardless of
        how many records match. Nothing is written when no record matches.

        Returns:
            Number of records removed
        """
        self._require_readable()
        total_batches = self.batch_count
        kept_records: list[ChunkRecord] = []
        kept_vectors: list[np.ndarray] = []
        removed = 0

        for batch_number in range(total_batches):
            records, vectors = self.cache.get(batch_number)
            for record, vector in zip(records, vectors):
                if record.source == source:
                    removed += 1
                else:
                    kept_records.append(record)
                    kept_vectors.append(vector)

        if removed == 0:
            return 0

        for batch_number in range(total_batches):
            for path in self.layout.batch_paths(batch_number):
                path.unlink(missing_ok=True)

        self.cache.clear()
        self._index.chunk_count = len(kept_records)

        batch_size = self._index.batch_size
        for batch_number in range(self.batch_count):
            start = batch_number * batch_size
            end = start + batch_size
            self.cache.write(batch_number, kept_records[start:end], kept_vectors[start:end])

        self._save_index()
        logger.info(
            "Removed %d records for source %s; %d records remain",
            removed,
            source,
            len(kept_records),
        )
        return removed

    def save(self) -> None:
        """Flush cached batches, then persist config and index metadata."""
        self.cache.flush_all()
        self._save_config()
        self._save_index()

    def clear(self) -> None:
        """Delete every batch file and reset the store to empty."""
        for path in self.layout.list_batch_files():
            path.unlink(missing_ok=True)

        self.cache.clear()
        self._index = self._empty_index()
        self.layout.batch_size = self._index.batch_size
        self._save_index()
        logger.info("Cleared store %s", self.root)

    # Reads ----------------------------------------------------------------------

    def iter_batches(self) -> Iterator[tuple[int, list[ChunkRecord], list[np.ndarray]]]:
        """Yield ``(batch_number, records, vectors)`` in ascending batch order."""
        self._require_readable()
        for batch_number in range(self.batch_count):
            records, vectors = self.cache.get(batch_number)
            yield batch_number, list(records), list(vectors)

    def get_chunks(self) -> list[ChunkRecord]:
        """Return every record, loading all batches."""
        chunks: list[ChunkRecord] = []
        for _, records, _ in self.iter_batches():
            chunks.extend(records)
        return chunks

    def get_embeddings(self) -> np.ndarray:
        """Return every vector as a ``(n, dimension)`` float32 array."""
        rows: list[np.ndarray] = []
        for _, _, vectors in self.iter_batches():
            rows.extend(vectors)
        if not rows:
            return np.empty((0, self._config.dimension), dtype=np.float32)
        return np.stack(rows).astype(np.float32, copy=False)

    def get_graph_inputs(
        self, dimension: int | None = None, threshold: float | None = None
    ) -> GraphInputs | None:
        """Materialize everything a downstream similarity graph builder needs.

        Returns ``None`` for an empty store. Overrides fall back to the stored
        configuration; a zero dimension is a usage error.
        """
        if not self.has_data():
            return None

        dim = self.require_dimension(dimension)
        return GraphInputs(
            chunks=self.get_chunks(),
            embeddings=self.get_embeddings(),
            dimension=dim,
            threshold=self._config.threshold if threshold is None else threshold,
        )

    def has_data(self) -> bool:
        return self._index.chunk_count > 0

    def has_chunks_for_source(self, source: str) -> bool:
        """Return True when any record carries ``source``."""
        for _, records, _ in self.iter_batches():
            if any(record.source == source for record in records):
                return True
        return False

    def get_sources(self) -> list[str]:
        """Return the distinct source keys in first-seen order."""
        seen: dict[str, None] = {}
        for _, records, _ in self.iter_batches():
            for record in records:
                seen.setdefault(record.source, None)
        return list(seen)

    def get_stats(self) -> StoreStats:
        return StoreStats(
            chunk_count=self._index.chunk_count,
            batch_size=self._index.batch_size,
            batch_count=self.batch_count,
            dimension=self._config.dimension,
            threshold=self._config.threshold,
            created_at=self._config.created_at,
            updated_at=self._index.last_updated,
        )

    def verify(self) -> VerifyReport:
        """Check on-disk batches against the persisted index.

        Reads ``index.json`` and the batch files directly, so unsaved appends
        held in the cache are not considered. Nothing on disk is modified.
        """
        problems: list[str] = []
        index = self._index
        if self.layout.index_path.exists():
            try:
                index = self._read_model(self.layout.index_path, StoreIndex)
            except (OSError, ValueError, ValidationError) as exc:
                problems.append(f"index unreadable ({_first_line(exc)})")
        elif self._index.chunk_count:
            problems.append("index.json is missing")

        chunk_count = index.chunk_count
        batch_size = index.batch_size
        expected = -(-chunk_count // batch_size)

        chunk_numbers = self.layout.batch_numbers_on_disk(self.layout.chunks_dir)
        embedding_numbers = self.layout.batch_numbers_on_disk(self.layout.embeddings_dir)

        if chunk_numbers != embedding_numbers:
            problems.append(
                f"chunk batches {chunk_numbers} do not match embedding batches {embedding_numbers}"
            )
        if chunk_numbers != list(range(expected)):
            problems.append(
                f"expected {expected} batches for {chunk_count} records; found {chunk_numbers}"
            )

        dimension = self._config.dimension
        if chunk_numbers and not dimension:
            problems.append("store dimension not set; vector files were not checked")

        records_on_disk = 0
        for batch_number in chunk_numbers:
            chunk_path, embedding_path = self.layout.batch_paths(batch_number)
            try:
                records = BatchCache.read_records(chunk_path)
            except (OSError, ValueError, TypeError, KeyError) as exc:
                problems.append(f"batch {batch_number}: unreadable metadata ({exc})")
                continue
            records_on_disk += len(records)

            if batch_number < expected - 1 and len(records) != batch_size:
                problems.append(
                    f"batch {batch_number}: holds {len(records)} records; expected {batch_size}"
                )

            if not dimension or not embedding_path.exists():
                continue
            try:
                vector_count = decode_vectors(
                    embedding_path.read_bytes(), dimension
                ).shape[0]
            except (OSError, CorruptStoreError) as exc:
                problems.append(f"batch {batch_number}: unreadable vectors ({exc})")
                continue
            if vector_count != len(records):
                problems.append(
                    f"batch {batch_number}: {len(records)} records but {vector_count} vectors"
                )

        if records_on_disk != chunk_count:
            problems.append(f"index records {chunk_count} but batches hold {records_on_disk}")

        return VerifyReport(
            chunk_count=chunk_count,
            records_on_disk=records_on_disk,
            expected_batches=expected,
            batches_on_disk=chunk_numbers,
            problems=problems,
        )


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
