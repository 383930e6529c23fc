"""
Read-side query engine.

Addressing, in order of precedence:
1. no sub-path                      -> every record
2. sub-path, no usable index        -> every record (the sub-path is only a label)
3. sub-path + non-negative integer  -> [record at that offset] or [] when out of range

Filters are applied afterwards in every case: each (field, expected) pair
must match, comparing trimmed, case-folded text. A missing field compares as "".
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .models import Record

_INDEX_RE = re.compile(r"[0-9]+")

FilterPairs = Sequence[tuple[str, str]]


@dataclass(frozen=True)
class QueryResult:
    records: list[Record]
    matched_count: int


def parse_index(raw: str | None) -> int | None:
    """
    Return the positional index, or None when `raw` is not a non-negative integer.
    """
    if raw is None:
        return None
    text = raw.strip()
    if not _INDEX_RE.fullmatch(text):
        return None
    return int(text)


def comparable(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    elif isinstance(value, (dict, list)):
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    else:
        text = str(value)
    return text.strip().casefold()


def normalize_filters(filters: Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> list[tuple[str, str]]:
    if not filters:
        return []
    pairs = filters.items() if isinstance(filters, Mapping) else filters
    return [(str(field), comparable(expected)) for field, expected in pairs]


def matches(record: Record, filters: FilterPairs) -> bool:
    # `filters` must already be normalized (see normalize_filters).
    return all(comparable(record.get(field)) == expected for field, expected in filters)


def select(records: Sequence[Record], *, sub_path: str | None, index: str | None) -> list[Record]:
    if not sub_path:
        return list(records)

    position = parse_index(index)
    if position is None:
        # Any named sub-resource resolves to the one stored collection.
        return list(records)

    return [records[position]] if position < len(records) else []


def serve(
    records: Sequence[Record],
    *,
    sub_path: str | None = None,
    index: str | None = None,
    filters: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
) -> QueryResult:
    selected = select(records, sub_path=sub_path, index=index)
    pairs = normalize_filters(filters)
    if pairs:
        selected = [r for r in selected if matches(r, pairs)]
    return QueryResult(records=selected, matched_count=len(selected))
