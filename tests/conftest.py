"""Pytest configuration and fixtures."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Callable, Generator, Sequence
from pathlib import Path

import pytest

from chunkvault.app.ports import EmbeddingResult
from chunkvault.config import Settings
from chunkvault.store import ChunkRecord, ChunkStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def override_settings(temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide isolated ChunkVault settings scoped to tests."""

    import chunkvault.config as config_module

    original_settings = getattr(config_module, "_settings", None)

    settings = config_module.Settings(
        data_dir=temp_dir / "appdata",
        store_dir=temp_dir / "store",
        batch_size=3,
        max_cached_batches=2,
    )
    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings


@pytest.fixture
def make_record() -> Callable[..., ChunkRecord]:
    """Build chunk records with predictable ids."""

    def _make(source: str, chunk_index: int = 0, text: str | None = None) -> ChunkRecord:
        return ChunkRecord(
            id=f"{source}#{chunk_index}",
            text=text if text is not None else f"{source} chunk {chunk_index}",
            source=source,
            chunk_index=chunk_index,
        )

    return _make


@pytest.fixture
def store(temp_dir: Path) -> ChunkStore:
    """Small-batch store with dimension 3 configured."""
    chunk_store = ChunkStore(temp_dir / "store", batch_size=3, max_cached_batches=2)
    chunk_store.set_config(3, 0.7)
    return chunk_store


class FakeEmbedder:
    """Embedding port test double: one vector per text, derived from its length."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed_documents(self, texts: Sequence[str], *, dimensions: int) -> EmbeddingResult:
        self.calls.append(list(texts))
        vectors = [
            [float(len(text)) + i for i in range(dimensions)] for text in texts
        ]
        return EmbeddingResult(embeddings=vectors, dimensions=dimensions, model="fake")


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
