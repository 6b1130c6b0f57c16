"""Application bootstrap wiring settings, store, and services."""

from __future__ import annotations

from dataclasses import dataclass

from chunkvault.app import IndexingService
from chunkvault.app.ports import EmbeddingPort
from chunkvault.config import Settings, get_settings
from chunkvault.index.state import IndexState
from chunkvault.store import ChunkStore


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates the wired store and state for the CLI layer."""

    settings: Settings
    store: ChunkStore
    state: IndexState

    def indexing_service(self, embedder: EmbeddingPort) -> IndexingService:
        """Build an indexing service around ``embedder``."""
        return IndexingService(
            self.store,
            embedder,
            self.state,
            save_every=self.settings.save_every,
        )


def bootstrap_application(settings: Settings | None = None) -> ApplicationContainer:
    """Create the application container from ``settings`` (or the global ones)."""
    active_settings = settings or get_settings()
    store_dir = active_settings.get_store_dir()

    store = ChunkStore(
        store_dir,
        batch_size=active_settings.batch_size,
        max_cached_batches=active_settings.max_cached_batches,
        strict=active_settings.strict,
    )
    return ApplicationContainer(
        settings=active_settings,
        store=store,
        state=IndexState(store_dir),
    )
