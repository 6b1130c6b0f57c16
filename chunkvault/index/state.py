"""Content fingerprints for sources already written to the store.

Lets callers skip re-embedding a source whose content has not changed since
it was last indexed. Persisted as ``.chunkvault-state.json`` next to the
store data.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from chunkvault.store.models import now_ms
from chunkvault.utils.atomic import atomic_write_json
from chunkvault.utils.paths import quarantine_file

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".chunkvault-state.json"


class _StateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessedSource(_StateModel):
    path: str
    hash: str
    chunks: int = Field(ge=0)
    timestamp: int = Field(default_factory=now_ms)


class StoreMetadata(_StateModel):
    chunk_count: int = 0
    last_store_update: int = Field(default_factory=now_ms)


class StatePayload(_StateModel):
    files: dict[str, ProcessedSource] = Field(default_factory=dict)
    last_updated: int = Field(default_factory=now_ms)
    store_metadata: StoreMetadata | None = None


class IndexState:
    """Track which sources were indexed, and from what content."""

    def __init__(self, state_dir: Path):
        """Initialize state tracking.

        Args:
            state_dir: Directory holding the state file (usually the store root)
        """
        self.state_file = Path(state_dir) / STATE_FILE_NAME
        self._state = self._load_state()

    def _load_state(self) -> StatePayload:
        if not self.state_file.exists():
            return StatePayload()

        try:
            with open(self.state_file, encoding="utf-8") as fh:
                return StatePayload.model_validate(json.load(fh))
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning(
                "Index state %s is corrupted (%s); starting fresh.",
                self.state_file,
                type(exc).__name__,
            )
            try:
                quarantine_file(self.state_file)
            except OSError:
                logger.debug("Failed to back up corrupted state %s", self.state_file)
            return StatePayload()

    def save(self) -> None:
        self._state.last_updated = now_ms()
        atomic_write_json(
            self.state_file, self._state.model_dump(mode="json", by_alias=True, exclude_none=True)
        )

    @staticmethod
    def compute_hash(content: str | bytes) -> str:
        data = content.encode("utf-8") if isinstance(content, str) else content
        return hashlib.sha256(data).hexdigest()

    def needs_processing(self, source: str, content: str | bytes) -> bool:
        """Return True when ``source`` is new or its content changed."""
        existing = self._state.files.get(source)
        if existing is None:
            return True
        return existing.hash != self.compute_hash(content)

    def mark_processed(self, source: str, content: str | bytes, chunk_count: int) -> None:
        self._state.files[source] = ProcessedSource(
            path=source,
            hash=self.compute_hash(content),
            chunks=chunk_count,
        )

    def forget(self, source: str) -> bool:
        return self._state.files.pop(source, None) is not None

    def processed_sources(self) -> list[str]:
        return list(self._state.files)

    def get(self, source: str) -> ProcessedSource | None:
        return self._state.files.get(source)

    def update_store_metadata(self, chunk_count: int) -> None:
        self._state.store_metadata = StoreMetadata(chunk_count=chunk_count)

    @property
    def store_metadata(self) -> StoreMetadata | None:
        return self._state.store_metadata
