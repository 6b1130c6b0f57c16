"""Mapping from global record positions to batch numbers and batch files."""

from __future__ import annotations

import re
from pathlib import Path

from chunkvault.utils.paths import ensure_dir

CHUNKS_DIR = "chunks"
EMBEDDINGS_DIR = "embeddings"
CONFIG_FILE = "config.json"
INDEX_FILE = "index.json"

BATCH_PREFIX = "batch-"
BATCH_DIGITS = 4
CHUNK_SUFFIX = ".json"
EMBEDDING_SUFFIX = ".bin"

_BATCH_NAME = re.compile(r"^batch-(\d{4,})\.(json|bin)$")


class BatchLayout:
    """Batch topology and file naming for a store directory.

    ``batch_size`` fixes how many records each batch holds and ``dimension``
    is the vector width used to encode and decode batch files. Paths are pure
    functions of the batch number.
    """

    def __init__(self, root: Path, *, batch_size: int, dimension: int = 0) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1; received {batch_size}")
        self.root = Path(root)
        self.batch_size = int(batch_size)
        self.dimension = int(dimension)

    @property
    def chunks_dir(self) -> Path:
        return self.root / CHUNKS_DIR

    @property
    def embeddings_dir(self) -> Path:
        return self.root / EMBEDDINGS_DIR

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILE

    def ensure_directories(self) -> None:
        ensure_dir(self.chunks_dir)
        ensure_dir(self.embeddings_dir)

    def batch_number(self, global_index: int) -> int:
        """Return the batch holding record ``global_index``."""
        if global_index < 0:
            raise ValueError(f"global_index must be non-negative; received {global_index}")
        return global_index // self.batch_size

    def batch_count(self, total_count: int) -> int:
        """Return how many batches ``total_count`` records occupy."""
        return -(-total_count // self.batch_size)

    def batch_bounds(self, batch_number: int, total_count: int) -> tuple[int, int]:
        """Return the half-open global index range held by ``batch_number``."""
        start = batch_number * self.batch_size
        return start, min(start + self.batch_size, total_count)

    def batch_name(self, batch_number: int) -> str:
        if batch_number < 0:
            raise ValueError(f"batch_number must be non-negative; received {batch_number}")
        return f"{BATCH_PREFIX}{batch_number:0{BATCH_DIGITS}d}"

    def chunk_path(self, batch_number: int) -> Path:
        return self.chunks_dir / f"{self.batch_name(batch_number)}{CHUNK_SUFFIX}"

    def embedding_path(self, batch_number: int) -> Path:
        return self.embeddings_dir / f"{self.batch_name(batch_number)}{EMBEDDING_SUFFIX}"

    def batch_paths(self, batch_number: int) -> tuple[Path, Path]:
        return self.chunk_path(batch_number), self.embedding_path(batch_number)

    def list_batch_files(self) -> list[Path]:
        """Return every batch file on disk, metadata first, sorted by name."""
        files: list[Path] = []
        for directory in (self.chunks_dir, self.embeddings_dir):
            if directory.is_dir():
                files.extend(
                    sorted(p for p in directory.iterdir() if _BATCH_NAME.match(p.name))
                )
        return files

    def batch_numbers_on_disk(self, directory: Path) -> list[int]:
        """Return the batch numbers with a file present in ``directory``."""
        if not directory.is_dir():
            return []
        numbers = []
        for path in directory.iterdir():
            match = _BATCH_NAME.match(path.name)
            if match:
                numbers.append(int(match.group(1)))
        return sorted(numbers)
