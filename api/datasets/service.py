"""
Dataset "service layer".

Orchestrates the two flows, independent of FastAPI routing:
- ingestion: upload/inline payload -> parsing -> address allocation -> store
- serving: address -> store -> query engine

Routers call these functions with an already-resolved owner id; who may
call them is decided by the auth layer, never here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from core import settings

from . import addressing, parsing, query
from .errors import NotFound, UploadTooLarge, ValidationError
from .models import (
    DEFAULT_CATEGORY,
    DEFAULT_VERSION,
    Dataset,
    DatasetDraft,
    DatasetPatch,
    SourceFormat,
    Visibility,
)
from .store import DatasetStore

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 1024 * 1024  # 1 MiB


@dataclass(frozen=True)
class Upload:
    filename: str
    data: bytes


@dataclass(frozen=True)
class DatasetFields:
    """
    Metadata as submitted by the caller. `None` means "not supplied".
    """

    display_name: str | None = None
    description: str | None = None
    category: str | None = None
    version: str | None = None
    parameters_descriptor: Any = None
    endpoints_descriptor: Any = None
    visibility: str | None = None


async def read_upload(file: UploadFile | None, max_bytes: int | None = None) -> Upload | None:
    """
    Read an upload into memory, enforcing a maximum size.

    An empty, unnamed file part (what browsers send when no file was picked)
    counts as no upload at all.
    """
    if file is None:
        return None

    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes()
    buf = bytearray()
    while True:
        chunk = await file.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > limit:
            raise UploadTooLarge(f"File too large. Max is {limit} bytes.")

    if not file.filename:
        if not buf:
            return None
        raise ValidationError("Missing filename.")

    return Upload(filename=file.filename, data=bytes(buf))


def _has_inline(payload: Any) -> bool:
    if payload is None:
        return False
    if isinstance(payload, (str, bytes)):
        return bool(payload.strip())
    return True


async def ingest(upload: Upload | None, inline: Any = None) -> parsing.ParseResult:
    """
    Turn whatever the caller sent into records. An upload wins over an inline payload.
    """
    if upload is not None:
        # Format is checked before handing large bodies to a worker thread.
        parsing.resolve_format(upload.filename)
        return await run_in_threadpool(parsing.parse, upload.data, upload.filename)
    if _has_inline(inline):
        return parsing.parse_inline(inline)
    return parsing.ParseResult(records=[], source_format=SourceFormat.NONE)


def _descriptor(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _visibility(value: str | None) -> Visibility | None:
    if value is None:
        return None
    raw = value.strip().lower()
    try:
        return Visibility(raw)
    except ValueError as e:
        allowed = [v.value for v in Visibility]
        raise ValidationError(f"Invalid visibility '{value}'. Allowed: {allowed}") from e


def _display_name(value: str | None, *, required: bool) -> str | None:
    if value is None and not required:
        return None
    name = (value or "").strip()
    if not name:
        raise ValidationError("displayName is required.")
    return name


async def create_dataset(
    store: DatasetStore,
    *,
    owner: str,
    fields: DatasetFields,
    upload: Upload | None = None,
    inline: Any = None,
    allocate: Callable[[str], str] = addressing.allocate,
) -> Dataset:
    display_name = _display_name(fields.display_name, required=True)
    visibility = _visibility(fields.visibility) or Visibility.PUBLIC
    parsed = await ingest(upload, inline)
    base_url = settings.serve_base_url()

    def build_draft(address: str) -> DatasetDraft:
        url = addressing.serving_url(base_url, address)
        return DatasetDraft(
            owner=owner,
            display_name=display_name,
            address=address,
            serving_url=url,
            records=parsed.records,
            source_format=parsed.source_format,
            description=fields.description or "",
            category=fields.category or DEFAULT_CATEGORY,
            version=fields.version or DEFAULT_VERSION,
            parameters_descriptor=_descriptor(fields.parameters_descriptor) or "",
            endpoints_descriptor=_descriptor(fields.endpoints_descriptor) or "",
            visibility=visibility,
            example_usage_snippet=addressing.example_usage_snippet(display_name, url),
        )

    dataset = await store.create(
        build_draft,
        allocate=lambda: allocate(display_name),
        max_attempts=settings.address_max_attempts(),
    )
    logger.info(
        "dataset_created id=%s address=%s owner=%s format=%s records=%s",
        dataset.id,
        dataset.address,
        dataset.owner,
        dataset.source_format.value,
        dataset.record_count,
    )
    return dataset


async def update_dataset(
    store: DatasetStore,
    dataset_id: int,
    *,
    owner: str | None,
    fields: DatasetFields,
    upload: Upload | None = None,
    inline: Any = None,
) -> Dataset:
    """
    Merge metadata field by field and, with a new upload (or inline payload),
    replace the records wholesale.

    The address (and so the serving URL) never changes, even on rename.
    """
    display_name = _display_name(fields.display_name, required=False)
    visibility = _visibility(fields.visibility)
    # Parse before touching the store so a bad file leaves the dataset as it was.
    parsed = await ingest(upload, inline) if upload is not None or _has_inline(inline) else None

    current = await store.get_by_id(dataset_id)
    if owner is not None and current.owner != owner:
        # Same answer as a missing dataset: don't reveal other owners' ids.
        raise NotFound("Dataset not found.")

    patch = DatasetPatch(
        display_name=display_name,
        description=fields.description,
        category=fields.category,
        version=fields.version,
        parameters_descriptor=_descriptor(fields.parameters_descriptor),
        endpoints_descriptor=_descriptor(fields.endpoints_descriptor),
        visibility=visibility,
        records=parsed.records if parsed is not None else None,
        source_format=parsed.source_format if parsed is not None else None,
        example_usage_snippet=(
            addressing.example_usage_snippet(display_name, current.serving_url) if display_name is not None else None
        ),
    )
    if patch.is_empty():
        return current

    dataset = await store.replace(dataset_id, patch, owner=owner)
    logger.info(
        "dataset_updated id=%s address=%s fields=%s",
        dataset.id,
        dataset.address,
        ",".join(sorted(patch.changes())),
    )
    return dataset


async def delete_dataset(store: DatasetStore, dataset_id: int, *, owner: str | None) -> Dataset:
    """
    Terminal removal. Returns the dataset as it was, for event subscribers.
    """
    dataset = await store.get_by_id(dataset_id)
    await store.delete(dataset_id, owner=owner)
    logger.info("dataset_deleted id=%s address=%s", dataset.id, dataset.address)
    return dataset


async def get_dataset(store: DatasetStore, dataset_id: int) -> Dataset:
    return await store.get_by_id(dataset_id)


async def list_public(store: DatasetStore, *, limit: int = 100, offset: int = 0) -> list[Dataset]:
    return await store.list_public(limit=limit, offset=offset)


async def list_mine(store: DatasetStore, *, owner: str, limit: int = 100, offset: int = 0) -> list[Dataset]:
    return await store.list_by_owner(owner, limit=limit, offset=offset)


async def serve_dataset(
    store: DatasetStore,
    address: str,
    *,
    sub_path: str | None = None,
    index: str | None = None,
    filters: list[tuple[str, str]] | None = None,
) -> query.QueryResult:
    dataset = await store.get_by_address(address)
    result = query.serve(dataset.records, sub_path=sub_path, index=index, filters=filters)
    logger.debug(
        "dataset_served address=%s sub_path=%s index=%s filters=%s matched=%s",
        address,
        sub_path,
        index,
        len(filters or []),
        result.matched_count,
    )
    return result
