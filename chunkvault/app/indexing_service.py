"""Re-indexing orchestration on top of the chunk store.

Keeps a source's records current: stale records are compacted away before the
fresh chunks are embedded and appended, and unchanged sources are skipped
when an :class:`IndexState` is supplied.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from chunkvault.app.ports import ChunkStorePort, EmbeddingPort
from chunkvault.index.state import IndexState
from chunkvault.store.errors import StoreConfigurationError
from chunkvault.store.models import ChunkRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexOutcome:
    """Result of indexing one source."""

    source: str
    added: int = 0
    removed: int = 0
    skipped: bool = False


class IndexingService:
    """Embed and store chunks per source, replacing prior versions."""

    def __init__(
        self,
        store: ChunkStorePort,
        embedder: EmbeddingPort,
        state: IndexState | None = None,
        *,
        save_every: int = 0,
    ) -> None:
        if save_every < 0:
            raise ValueError(f"save_every must be non-negative; received {save_every}")
        self.store = store
        self.embedder = embedder
        self.state = state
        self.save_every = save_every
        self._since_save = 0

    def index_source(
        self,
        source: str,
        texts: Sequence[str],
        *,
        content: str | bytes | None = None,
    ) -> IndexOutcome:
        """Replace the records for ``source`` with one record per text.

        Args:
            source: Source key, typically the originating file path
            texts: Chunk texts in order; ``chunk_index`` follows this order
            content: Raw source content. When given together with a state
                tracker, an unchanged source is skipped.
        """
        if content is not None and self.state is not None:
            if not self.state.needs_processing(source, content):
                logger.debug("Skipping unchanged source %s", source)
                return IndexOutcome(source=source, skipped=True)

        outcome = IndexOutcome(source=source)
        if self.store.has_chunks_for_source(source):
            outcome.removed = self.store.remove_chunks_by_source(source)

        if texts:
            dimension = self.store.dimension
            if not dimension:
                raise StoreConfigurationError("Store dimension not set; call set_config() first")

            result = self.embedder.embed_documents(list(texts), dimensions=dimension)
            if len(result.embeddings) != len(texts):
                raise StoreConfigurationError(
                    f"Embedder returned {len(result.embeddings)} vectors for {len(texts)} texts"
                )

            for chunk_index, (text, vector) in enumerate(zip(texts, result.embeddings)):
                record = ChunkRecord(
                    id=str(uuid.uuid4()),
                    text=text,
                    source=source,
                    chunk_index=chunk_index,
                )
                self.store.add_chunk(record, vector)
            outcome.added = len(texts)

        if self.state is not None and content is not None:
            self.state.mark_processed(source, content, outcome.added)

        self._since_save += 1
        if self.save_every and self._since_save >= self.save_every:
            self.flush()

        return outcome

    def remove_source(self, source: str) -> int:
        """Remove every record for ``source`` and forget its fingerprint."""
        removed = self.store.remove_chunks_by_source(source)
        if self.state is not None:
            self.state.forget(source)
        return removed

    def rename_source(
        self,
        old_source: str,
        new_source: str,
        texts: Sequence[str],
        *,
        content: str | bytes | None = None,
    ) -> IndexOutcome:
        """Drop ``old_source`` and index ``texts`` under ``new_source``."""
        removed = self.remove_source(old_source)
        outcome = self.index_source(new_source, texts, content=content)
        outcome.removed += removed
        return outcome

    def flush(self) -> None:
        """Persist the store and the index state."""
        self.store.save()
        if self.state is not None:
            self.state.update_store_metadata(self.store.get_stats().chunk_count)
            self.state.save()
        self._since_save = 0
