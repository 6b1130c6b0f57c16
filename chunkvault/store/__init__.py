"""Batched on-disk storage of chunk records and embedding vectors."""

from chunkvault.store.cache import BatchCache
from chunkvault.store.codec import decode_vectors, encode_vectors
from chunkvault.store.core import ChunkStore, GraphInputs
from chunkvault.store.errors import (
    ChunkStoreError,
    CorruptBatchError,
    CorruptStoreError,
    StoreConfigurationError,
)
from chunkvault.store.layout import BatchLayout
from chunkvault.store.models import (
    ChunkRecord,
    StoreConfig,
    StoreIndex,
    StoreStats,
    VerifyReport,
)

__all__ = [
    "BatchCache",
    "BatchLayout",
    "ChunkRecord",
    "ChunkStore",
    "ChunkStoreError",
    "CorruptBatchError",
    "CorruptStoreError",
    "GraphInputs",
    "StoreConfig",
    "StoreConfigurationError",
    "StoreIndex",
    "StoreStats",
    "VerifyReport",
    "decode_vectors",
    "encode_vectors",
]
