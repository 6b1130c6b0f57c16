"""Schema-stamped JSON output for CLI commands."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from chunkvault import __version__


def json_response(
    schema_id: str,
    schema_version: int,
    **data: Any,
) -> str:
    """Create schema-wrapped JSON response for CLI output.

    Example:
        >>> json_response("store_stats", 1, chunkCount=0)
        {
          "schema_id": "store_stats",
          "schema_version": 1,
          "producer": "chunkvault-0.1.0",
          "produced_at": "2026-01-01T10:30:00+00:00",
          "chunkCount": 0
        }
    """
    wrapped = {
        "schema_id": schema_id,
        "schema_version": schema_version,
        "producer": f"chunkvault-{__version__}",
        "produced_at": datetime.now(UTC).isoformat(),
        **data,
    }
    return json.dumps(wrapped, indent=2, default=str)
