"""
Dataset domain types.

Records are plain insertion-ordered dicts; a dataset never enforces a schema
on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any

Record = dict[str, Any]

DEFAULT_CATEGORY = "General"
DEFAULT_VERSION = "v1"


class SourceFormat(str, Enum):
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"
    NONE = "none"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class DatasetDraft:
    """
    Everything needed to insert a dataset except the store-generated fields.
    """

    owner: str
    display_name: str
    address: str
    serving_url: str
    records: list[Record] = field(default_factory=list)
    source_format: SourceFormat = SourceFormat.NONE
    description: str = ""
    category: str = DEFAULT_CATEGORY
    version: str = DEFAULT_VERSION
    parameters_descriptor: str = ""
    endpoints_descriptor: str = ""
    visibility: Visibility = Visibility.PUBLIC
    example_usage_snippet: str = ""


@dataclass(frozen=True)
class Dataset:
    id: int
    owner: str
    display_name: str
    address: str
    serving_url: str
    records: list[Record]
    source_format: SourceFormat
    description: str
    category: str
    version: str
    parameters_descriptor: str
    endpoints_descriptor: str
    visibility: Visibility
    example_usage_snippet: str
    created_at: datetime
    updated_at: datetime
    # Kept separately so metadata-only listings can report a size without records.
    record_count: int = 0

    def without_records(self) -> Dataset:
        return replace(self, records=[])


@dataclass(frozen=True)
class DatasetPatch:
    """
    Partial update. `None` means "leave untouched"; owner and address are not
    part of the patch, so they cannot change.
    """

    display_name: str | None = None
    description: str | None = None
    category: str | None = None
    version: str | None = None
    parameters_descriptor: str | None = None
    endpoints_descriptor: str | None = None
    visibility: Visibility | None = None
    records: list[Record] | None = None
    source_format: SourceFormat | None = None
    example_usage_snippet: str | None = None

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> DatasetPatch:
        # Unknown keys (owner, address, id, ...) are dropped, not rejected.
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def is_empty(self) -> bool:
        return not self.changes()
