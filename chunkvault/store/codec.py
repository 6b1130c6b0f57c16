"""Binary codec for batches of fixed-dimension float32 vectors.

Layout::

    [count: uint32 LE] [vector 0: dimension x float32 LE] ... [vector count-1]

Vectors are densely packed with no padding, so a buffer holding ``count``
vectors is exactly ``4 + count * dimension * 4`` bytes long.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from chunkvault.store.errors import CorruptBatchError, StoreConfigurationError

HEADER_DTYPE = np.dtype("<u4")
VECTOR_DTYPE = np.dtype("<f4")
HEADER_SIZE = HEADER_DTYPE.itemsize


def expected_size(count: int, dimension: int) -> int:
    """Return the encoded size in bytes of ``count`` vectors."""
    return HEADER_SIZE + count * dimension * VECTOR_DTYPE.itemsize


def as_vector_matrix(
    vectors: Sequence[Sequence[float]] | np.ndarray, dimension: int
) -> np.ndarray:
    """Coerce ``vectors`` into a ``(count, dimension)`` float32 array."""
    if len(vectors) == 0:
        return np.empty((0, dimension), dtype=np.float32)

    try:
        array = np.asarray(vectors, dtype=np.float32)
    except ValueError as exc:
        raise StoreConfigurationError(
            f"Vectors must all have dimension {dimension}: {exc}"
        ) from exc

    if array.ndim != 2 or array.shape[1] != dimension:
        raise StoreConfigurationError(
            f"Vectors must form a 2D array with shape (n, {dimension}); received {array.shape}"
        )
    return array


def encode_vectors(vectors: Sequence[Sequence[float]] | np.ndarray, dimension: int) -> bytes:
    """Encode ``vectors`` into the batch binary format."""
    array = as_vector_matrix(vectors, dimension)
    header = np.asarray([array.shape[0]], dtype=HEADER_DTYPE).tobytes()
    return header + array.astype(VECTOR_DTYPE, copy=False).tobytes()


def decode_vectors(buffer: bytes, dimension: int) -> np.ndarray:
    """Decode a batch buffer into a ``(count, dimension)`` float32 array.

    Raises:
        CorruptBatchError: if the buffer is truncated or its length does not
            match the vector count declared in its header.
    """
    if len(buffer) < HEADER_SIZE:
        raise CorruptBatchError(
            f"Vector buffer too short for header ({len(buffer)} bytes)"
        )

    count = int(np.frombuffer(buffer, dtype=HEADER_DTYPE, count=1)[0])
    size = expected_size(count, dimension)
    if len(buffer) != size:
        raise CorruptBatchError(
            f"Vector buffer declares {count} vectors of dimension {dimension} "
            f"({size} bytes) but holds {len(buffer)} bytes"
        )

    if count == 0:
        return np.empty((0, dimension), dtype=np.float32)

    values = np.frombuffer(buffer, dtype=VECTOR_DTYPE, offset=HEADER_SIZE)
    # Native-endian, writable copy so callers may keep or mutate rows freely.
    return values.reshape(count, dimension).astype(np.float32)
