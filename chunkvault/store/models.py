"""Persisted data models for the chunk store.

All models serialize with camelCase keys so the on-disk JSON matches the
documented layout (``chunkIndex``, ``createdAt``, ``chunkCount`` ...), while
Python callers use snake_case attribute names.
"""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CONFIG_VERSION = "1.0"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_CACHED_BATCHES = 5
DEFAULT_THRESHOLD = 0.7


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ChunkRecord(_CamelModel):
    """One text unit stored alongside its embedding."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., description="Opaque unique identifier")
    text: str = Field(..., description="Chunk text content")
    source: str = Field(..., description="Source key, typically the originating file path")
    chunk_index: int = Field(..., ge=0, description="Position of the chunk within its source")


class StoreConfig(_CamelModel):
    """Store-wide configuration persisted to ``config.json``."""

    version: str = CONFIG_VERSION
    dimension: int = Field(default=0, ge=0)
    threshold: float = DEFAULT_THRESHOLD
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)


class StoreIndex(_CamelModel):
    """Record count and batch topology persisted to ``index.json``."""

    chunk_count: int = Field(default=0, ge=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    last_updated: int = Field(default_factory=now_ms)


class StoreStats(_CamelModel):
    """Read-only summary of a store."""

    chunk_count: int
    batch_size: int
    batch_count: int
    dimension: int
    threshold: float
    created_at: int
    updated_at: int


class VerifyReport(_CamelModel):
    """Outcome of an on-disk consistency check."""

    chunk_count: int
    records_on_disk: int
    expected_batches: int
    batches_on_disk: list[int] = Field(default_factory=list)
    problems: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems
