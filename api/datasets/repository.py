"""
Dataset persistence (Postgres, raw SQL).

Schema comes from the dbmate migration in `db/migrations/`:
- datasets(id bigserial, owner, display_name, ..., records json,
  address text UNIQUE, created_at, updated_at)

`records` is a `json` column rather than `jsonb`: `json` keeps the text as
uploaded, so field order inside each record survives a round trip.
"""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from core import db

from .errors import DuplicateAddress, NotFound
from .models import Dataset, DatasetDraft, DatasetPatch, Record, SourceFormat, Visibility
from .store import DatasetStore

METADATA_COLUMNS = """
    id, owner, display_name, description, category, version,
    parameters_descriptor, endpoints_descriptor, source_format, visibility,
    address, serving_url, example_usage_snippet, created_at, updated_at,
    json_array_length(records) AS record_count
"""

FULL_COLUMNS = METADATA_COLUMNS + ", records"


def _json_arg(value: list[Record] | None) -> str | None:
    """
    asyncpg does not automatically encode Python lists for json parameters.
    We pass JSON as a string and cast to json in SQL.
    """
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _enum_arg(value: SourceFormat | Visibility | None) -> str | None:
    return value.value if value is not None else None


def row_to_dataset(row: dict[str, Any]) -> Dataset:
    records = row.get("records")
    if isinstance(records, str):
        records = json.loads(records)
    return Dataset(
        id=int(row["id"]),
        owner=str(row["owner"]),
        display_name=str(row["display_name"]),
        address=str(row["address"]),
        serving_url=str(row["serving_url"]),
        records=list(records or []),
        source_format=SourceFormat(row["source_format"]),
        description=str(row.get("description") or ""),
        category=str(row.get("category") or ""),
        version=str(row.get("version") or ""),
        parameters_descriptor=str(row.get("parameters_descriptor") or ""),
        endpoints_descriptor=str(row.get("endpoints_descriptor") or ""),
        visibility=Visibility(row["visibility"]),
        example_usage_snippet=str(row.get("example_usage_snippet") or ""),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        record_count=int(row.get("record_count") or 0),
    )


class PostgresDatasetStore(DatasetStore):
    async def insert(self, draft: DatasetDraft) -> Dataset:
        try:
            row = await db.fetch_one(
                f"""
                INSERT INTO datasets (
                  owner, display_name, description, category, version,
                  parameters_descriptor, endpoints_descriptor, records, source_format,
                  visibility, address, serving_url, example_usage_snippet
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8::json, $9, $10, $11, $12, $13)
                RETURNING {FULL_COLUMNS}
                """,
                draft.owner,
                draft.display_name,
                draft.description,
                draft.category,
                draft.version,
                draft.parameters_descriptor,
                draft.endpoints_descriptor,
                _json_arg(draft.records),
                draft.source_format.value,
                draft.visibility.value,
                draft.address,
                draft.serving_url,
                draft.example_usage_snippet,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateAddress(f"Address '{draft.address}' is already taken.") from e

        if row is None:
            raise RuntimeError("Failed to insert dataset.")
        return row_to_dataset(row)

    async def get_by_id(self, dataset_id: int) -> Dataset:
        row = await db.fetch_one(
            f"""
            SELECT {FULL_COLUMNS}
            FROM datasets
            WHERE id = $1
            """,
            dataset_id,
        )
        if row is None:
            raise NotFound("Dataset not found.")
        return row_to_dataset(row)

    async def get_by_address(self, address: str) -> Dataset:
        row = await db.fetch_one(
            f"""
            SELECT {FULL_COLUMNS}
            FROM datasets
            WHERE address = $1
            """,
            address,
        )
        if row is None:
            raise NotFound("Dataset not found.")
        return row_to_dataset(row)

    async def list_by_owner(self, owner: str, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
        rows = await db.fetch_all(
            f"""
            SELECT {METADATA_COLUMNS}
            FROM datasets
            WHERE owner = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2
            OFFSET $3
            """,
            owner,
            limit,
            offset,
        )
        return [row_to_dataset(r) for r in rows]

    async def list_public(self, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
        rows = await db.fetch_all(
            f"""
            SELECT {METADATA_COLUMNS}
            FROM datasets
            WHERE visibility = 'public'
            ORDER BY created_at DESC, id DESC
            LIMIT $1
            OFFSET $2
            """,
            limit,
            offset,
        )
        return [row_to_dataset(r) for r in rows]

    async def replace(self, dataset_id: int, patch: DatasetPatch, *, owner: str | None = None) -> Dataset:
        # One UPDATE statement: concurrent patches never interleave field by field.
        row = await db.fetch_one(
            f"""
            UPDATE datasets
            SET display_name = COALESCE($3, display_name),
                description = COALESCE($4, description),
                category = COALESCE($5, category),
                version = COALESCE($6, version),
                parameters_descriptor = COALESCE($7, parameters_descriptor),
                endpoints_descriptor = COALESCE($8, endpoints_descriptor),
                visibility = COALESCE($9, visibility),
                records = COALESCE($10::json, records),
                source_format = COALESCE($11, source_format),
                example_usage_snippet = COALESCE($12, example_usage_snippet),
                updated_at = now()
            WHERE id = $1
              AND ($2::text IS NULL OR owner = $2)
            RETURNING {FULL_COLUMNS}
            """,
            dataset_id,
            owner,
            patch.display_name,
            patch.description,
            patch.category,
            patch.version,
            patch.parameters_descriptor,
            patch.endpoints_descriptor,
            _enum_arg(patch.visibility),
            _json_arg(patch.records),
            _enum_arg(patch.source_format),
            patch.example_usage_snippet,
        )
        if row is None:
            raise NotFound("Dataset not found.")
        return row_to_dataset(row)

    async def delete(self, dataset_id: int, *, owner: str | None = None) -> None:
        row = await db.fetch_one(
            """
            DELETE FROM datasets
            WHERE id = $1
              AND ($2::text IS NULL OR owner = $2)
            RETURNING id
            """,
            dataset_id,
            owner,
        )
        if row is None:
            raise NotFound("Dataset not found.")
