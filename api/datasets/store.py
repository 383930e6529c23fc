"""
Dataset store contract + in-memory backend.

The store is the only component that mutates datasets. Two backends exist:
- `MemoryDatasetStore` (this module): single process, for dev and tests
- `PostgresDatasetStore` (`repository.py`): asyncpg + raw SQL

`api/main.py` picks one at startup (DATASET_STORE) and registers it with
`configure_store()`; routes receive it through `get_store()`.
"""

from __future__ import annotations

import abc
import asyncio
import copy
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from .errors import AddressExhausted, DuplicateAddress, NotFound
from .models import Dataset, DatasetDraft, DatasetPatch, Visibility

logger = logging.getLogger(__name__)

_store: DatasetStore | None = None


class DatasetStore(abc.ABC):
    @abc.abstractmethod
    async def insert(self, draft: DatasetDraft) -> Dataset:
        """
        Persist a draft as-is. Raises DuplicateAddress if its address is taken.
        """

    @abc.abstractmethod
    async def get_by_id(self, dataset_id: int) -> Dataset:
        ...

    @abc.abstractmethod
    async def get_by_address(self, address: str) -> Dataset:
        ...

    @abc.abstractmethod
    async def list_by_owner(self, owner: str, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
        """
        All of an owner's datasets, any visibility, metadata only.
        """

    @abc.abstractmethod
    async def list_public(self, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
        """
        Public datasets, metadata only (records are left empty, record_count is kept).
        """

    @abc.abstractmethod
    async def replace(self, dataset_id: int, patch: DatasetPatch, *, owner: str | None = None) -> Dataset:
        """
        Apply a partial update as one atomic operation.

        When `owner` is given, datasets owned by someone else are reported as NotFound.
        """

    @abc.abstractmethod
    async def delete(self, dataset_id: int, *, owner: str | None = None) -> None:
        ...

    async def create(
        self,
        build_draft: Callable[[str], DatasetDraft],
        *,
        allocate: Callable[[], str],
        max_attempts: int,
    ) -> Dataset:
        """
        Allocate an address, insert, and on collision reallocate and try again.

        `build_draft` receives each candidate address (the serving URL and
        usage snippet depend on it).
        """
        for attempt in range(1, max_attempts + 1):
            address = allocate()
            try:
                return await self.insert(build_draft(address))
            except DuplicateAddress:
                logger.warning("address_collision address=%s attempt=%s/%s", address, attempt, max_attempts)

        raise AddressExhausted(
            f"Could not allocate a unique address after {max_attempts} attempts. Try a different name."
        )


def configure_store(store: DatasetStore | None) -> None:
    global _store
    _store = store


def get_store() -> DatasetStore:
    if _store is None:
        raise RuntimeError("Dataset store is not configured. Call configure_store() on startup.")
    return _store


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryDatasetStore(DatasetStore):
    """
    Process-local store. Mutations are serialized on one asyncio.Lock, and
    datasets are deep-copied on the way in and out so callers never share
    record lists with the store.
    """

    def __init__(self) -> None:
        self._rows: dict[int, Dataset] = {}
        self._ids_by_address: dict[str, int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def insert(self, draft: DatasetDraft) -> Dataset:
        async with self._lock:
            if draft.address in self._ids_by_address:
                raise DuplicateAddress(f"Address '{draft.address}' is already taken.")

            now = _utc_now()
            records = copy.deepcopy(draft.records)
            dataset = Dataset(
                id=self._next_id,
                owner=draft.owner,
                display_name=draft.display_name,
                address=draft.address,
                serving_url=draft.serving_url,
                records=records,
                source_format=draft.source_format,
                description=draft.description,
                category=draft.category,
                version=draft.version,
                parameters_descriptor=draft.parameters_descriptor,
                endpoints_descriptor=draft.endpoints_descriptor,
                visibility=draft.visibility,
                example_usage_snippet=draft.example_usage_snippet,
                created_at=now,
                updated_at=now,
                record_count=len(records),
            )
            self._rows[dataset.id] = dataset
            self._ids_by_address[dataset.address] = dataset.id
            self._next_id += 1
            return copy.deepcopy(dataset)

    async def get_by_id(self, dataset_id: int) -> Dataset:
        row = self._rows.get(dataset_id)
        if row is None:
            raise NotFound("Dataset not found.")
        return copy.deepcopy(row)

    async def get_by_address(self, address: str) -> Dataset:
        dataset_id = self._ids_by_address.get(address)
        if dataset_id is None:
            raise NotFound("Dataset not found.")
        return copy.deepcopy(self._rows[dataset_id])

    def _newest_first(self, rows: list[Dataset]) -> list[Dataset]:
        return sorted(rows, key=lambda d: (d.created_at, d.id), reverse=True)

    async def list_by_owner(self, owner: str, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
        rows = self._newest_first([d for d in self._rows.values() if d.owner == owner])
        return [d.without_records() for d in rows[offset : offset + limit]]

    async def list_public(self, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
        rows = self._newest_first([d for d in self._rows.values() if d.visibility == Visibility.PUBLIC])
        return [d.without_records() for d in rows[offset : offset + limit]]

    def _owned_row(self, dataset_id: int, owner: str | None) -> Dataset:
        row = self._rows.get(dataset_id)
        if row is None or (owner is not None and row.owner != owner):
            raise NotFound("Dataset not found.")
        return row

    async def replace(self, dataset_id: int, patch: DatasetPatch, *, owner: str | None = None) -> Dataset:
        async with self._lock:
            row = self._owned_row(dataset_id, owner)
            changes = patch.changes()
            if "records" in changes:
                changes["records"] = copy.deepcopy(changes["records"])
                changes["record_count"] = len(changes["records"])
            updated = replace(row, **changes, updated_at=_utc_now())
            self._rows[dataset_id] = updated
            return copy.deepcopy(updated)

    async def delete(self, dataset_id: int, *, owner: str | None = None) -> None:
        async with self._lock:
            row = self._owned_row(dataset_id, owner)
            del self._rows[dataset_id]
            del self._ids_by_address[row.address]
