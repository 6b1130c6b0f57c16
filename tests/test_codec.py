"""Tests for the binary vector codec."""

from __future__ import annotations

import struct

import numpy as np
import pytest

from chunkvault.store.codec import decode_vectors, encode_vectors, expected_size
from chunkvault.store.errors import CorruptBatchError, StoreConfigurationError


def test_encode_two_vectors_produces_exact_layout() -> None:
    buffer = encode_vectors([[1.0, 2.0], [3.0, 4.0]], 2)

    assert len(buffer) == 4 + 2 * 2 * 4 == 20
    assert struct.unpack("<I", buffer[:4]) == (2,)
    assert struct.unpack("<4f", buffer[4:]) == (1.0, 2.0, 3.0, 4.0)


def test_decode_reproduces_original_vectors() -> None:
    buffer = encode_vectors([[1.0, 2.0], [3.0, 4.0]], 2)

    decoded = decode_vectors(buffer, 2)

    assert decoded.dtype == np.float32
    assert decoded.shape == (2, 2)
    assert decoded.tolist() == [[1.0, 2.0], [3.0, 4.0]]


def test_decode_is_bit_exact_for_float32_values() -> None:
    rng = np.random.default_rng(7)
    original = rng.standard_normal((5, 16)).astype(np.float32)

    decoded = decode_vectors(encode_vectors(original, 16), 16)

    assert decoded.tobytes() == original.tobytes()


def test_empty_batch_is_header_only() -> None:
    buffer = encode_vectors([], 8)

    assert buffer == b"\x00\x00\x00\x00"
    assert decode_vectors(buffer, 8).shape == (0, 8)


def test_expected_size() -> None:
    assert expected_size(0, 1024) == 4
    assert expected_size(1000, 256) == 4 + 1000 * 256 * 4


def test_encode_rejects_wrong_dimension() -> None:
    with pytest.raises(StoreConfigurationError):
        encode_vectors([[1.0, 2.0, 3.0]], 2)


def test_encode_rejects_ragged_vectors() -> None:
    with pytest.raises(StoreConfigurationError):
        encode_vectors([[1.0, 2.0], [3.0]], 2)


def test_decode_rejects_truncated_buffer() -> None:
    buffer = encode_vectors([[1.0, 2.0], [3.0, 4.0]], 2)

    with pytest.raises(CorruptBatchError):
        decode_vectors(buffer[:-4], 2)


def test_decode_rejects_buffer_without_header() -> None:
    with pytest.raises(CorruptBatchError):
        decode_vectors(b"\x01\x00", 2)


def test_decode_rejects_dimension_mismatch() -> None:
    buffer = encode_vectors([[1.0, 2.0], [3.0, 4.0]], 2)

    with pytest.raises(CorruptBatchError):
        decode_vectors(buffer, 3)
