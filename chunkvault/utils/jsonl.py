"""JSONL reading and writing helpers with durability guarantees."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, cast

from chunkvault.utils.atomic import atomic_open


def _normalize_record(record: Any) -> str:
    """Convert supported record types into a JSON string."""
    if hasattr(record, "model_dump"):
        payload = cast(Any, record).model_dump(mode="json", by_alias=True)
        if not isinstance(payload, dict):
            raise TypeError("Pydantic model_dump did not return a mapping.")
        typed_payload = dict(payload)
    elif is_dataclass(record) and not isinstance(record, type):
        typed_payload = dict(asdict(record))
    elif isinstance(record, dict):
        typed_payload = dict(record)
    else:
        raise TypeError(
            "Unsupported record type for JSONL serialization: "
            f"{type(record)!r}. Provide dict, dataclass, or Pydantic model."
        )

    return json.dumps(typed_payload, separators=(",", ":"), ensure_ascii=False)


def read_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    """Yield one parsed object per non-blank line of ``path``."""
    with Path(path).open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_number}: invalid JSON ({exc.msg})") from exc
            if not isinstance(value, dict):
                raise ValueError(f"{path}:{line_number}: expected a JSON object")
            yield value


def atomic_write_jsonl(path: Path, records: Iterable[Any]) -> int:
    """Write ``records`` to ``path`` atomically as JSONL.

    Records are streamed into a temporary file that replaces ``path`` only
    once every line has been written and fsynced.

    Returns:
        Number of records written
    """
    count = 0
    with atomic_open(path, "w") as handle:
        for record in records:
            handle.write(_normalize_record(record))
            handle.write("\n")
            count += 1
    return count
