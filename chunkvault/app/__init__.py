"""Application services for ChunkVault."""

from chunkvault.app.indexing_service import IndexingService, IndexOutcome

__all__ = ["IndexOutcome", "IndexingService"]
