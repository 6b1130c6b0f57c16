"""Per-source indexing bookkeeping."""

from chunkvault.index.state import IndexState, ProcessedSource

__all__ = ["IndexState", "ProcessedSource"]
