"""
FastAPI router for dataset endpoints.

Management (`/datasets...`) needs a bearer token; serving (`/serve/...`) is
open: the address is the only thing a consumer needs to know.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile

from auth import dependencies as auth_dependencies

from . import events, schemas, service
from .models import Dataset
from .store import DatasetStore, get_store

router = APIRouter()


def dataset_fields(
    display_name: str | None = Form(default=None, alias="displayName"),
    description: str | None = Form(default=None),
    category: str | None = Form(default=None),
    version: str | None = Form(default=None),
    parameters_descriptor: str | None = Form(default=None, alias="parametersDescriptor"),
    endpoints_descriptor: str | None = Form(default=None, alias="endpointsDescriptor"),
    visibility: str | None = Form(default=None),
) -> service.DatasetFields:
    return service.DatasetFields(
        display_name=display_name,
        description=description,
        category=category,
        version=version,
        parameters_descriptor=parameters_descriptor,
        endpoints_descriptor=endpoints_descriptor,
        visibility=visibility,
    )


def _event(kind: str, dataset: Dataset) -> events.DatasetEvent:
    return events.DatasetEvent(kind=kind, dataset_id=dataset.id, owner=dataset.owner, address=dataset.address)


@router.post("/datasets", status_code=201, response_model=schemas.CreateDatasetResponse)
async def create_dataset(
    background_tasks: BackgroundTasks,
    fields: service.DatasetFields = Depends(dataset_fields),
    file: UploadFile | None = File(default=None),
    data: str | None = Form(default=None),
    owner: str = Depends(auth_dependencies.get_current_owner_id),
    store: DatasetStore = Depends(get_store),
) -> schemas.CreateDatasetResponse:
    """
    Create a dataset from an uploaded file (.csv, .xlsx, .xls, .json) or an
    inline JSON `data` field. The file wins when both are sent.
    """
    upload = await service.read_upload(file)
    dataset = await service.create_dataset(store, owner=owner, fields=fields, upload=upload, inline=data)
    background_tasks.add_task(events.publish, _event(events.CREATED, dataset))

    # Keep responses small; the records are served from the dataset's URL.
    return schemas.CreateDatasetResponse(
        message="Dataset created successfully.",
        dataset=schemas.to_summary(dataset),
    )


@router.get("/datasets/public", response_model=schemas.DatasetListResponse)
async def list_public_datasets(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: DatasetStore = Depends(get_store),
) -> schemas.DatasetListResponse:
    """
    Discovery listing: public datasets only, without their records.
    """
    datasets = await service.list_public(store, limit=limit, offset=offset)
    return schemas.DatasetListResponse(
        datasets=[schemas.to_detail(d) for d in datasets],
        count=len(datasets),
        limit=limit,
        offset=offset,
    )


@router.get("/datasets/mine", response_model=schemas.DatasetListResponse)
async def list_my_datasets(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner: str = Depends(auth_dependencies.get_current_owner_id),
    store: DatasetStore = Depends(get_store),
) -> schemas.DatasetListResponse:
    datasets = await service.list_mine(store, owner=owner, limit=limit, offset=offset)
    return schemas.DatasetListResponse(
        datasets=[schemas.to_detail(d) for d in datasets],
        count=len(datasets),
        limit=limit,
        offset=offset,
    )


@router.get("/datasets/{dataset_id}", response_model=schemas.DatasetDetail)
async def get_dataset(
    dataset_id: int,
    store: DatasetStore = Depends(get_store),
) -> schemas.DatasetDetail:
    dataset = await service.get_dataset(store, dataset_id)
    return schemas.to_detail(dataset, include_records=True)


@router.put("/datasets/{dataset_id}", response_model=schemas.UpdateDatasetResponse)
async def update_dataset(
    dataset_id: int,
    background_tasks: BackgroundTasks,
    fields: service.DatasetFields = Depends(dataset_fields),
    file: UploadFile | None = File(default=None),
    data: str | None = Form(default=None),
    owner: str = Depends(auth_dependencies.get_current_owner_id),
    store: DatasetStore = Depends(get_store),
) -> schemas.UpdateDatasetResponse:
    """
    Partial update. Omitted fields are left as they are; a new file replaces
    all records. The address never changes.
    """
    upload = await service.read_upload(file)
    dataset = await service.update_dataset(
        store,
        dataset_id,
        owner=owner,
        fields=fields,
        upload=upload,
        inline=data,
    )
    background_tasks.add_task(events.publish, _event(events.UPDATED, dataset))
    return schemas.UpdateDatasetResponse(
        message="Dataset updated successfully.",
        dataset=schemas.to_detail(dataset),
    )


@router.delete("/datasets/{dataset_id}", response_model=schemas.DeleteDatasetResponse)
async def delete_dataset(
    dataset_id: int,
    background_tasks: BackgroundTasks,
    owner: str = Depends(auth_dependencies.get_current_owner_id),
    store: DatasetStore = Depends(get_store),
) -> schemas.DeleteDatasetResponse:
    dataset = await service.delete_dataset(store, dataset_id, owner=owner)
    # Favorites/notification cleanup belongs to the subscribers of this event.
    background_tasks.add_task(events.publish, _event(events.DELETED, dataset))
    return schemas.DeleteDatasetResponse(message="Dataset deleted successfully.", id=dataset.id)


def _filters_echo(pairs: list[tuple[str, str]]) -> dict[str, str | list[str]]:
    echo: dict[str, str | list[str]] = {}
    for key, value in pairs:
        if key not in echo:
            echo[key] = value
            continue
        previous = echo[key]
        echo[key] = [*previous, value] if isinstance(previous, list) else [previous, value]
    return echo


async def _serve(
    request: Request,
    store: DatasetStore,
    address: str,
    sub_path: str | None = None,
    index: str | None = None,
) -> schemas.ServeResponse:
    # Every query parameter is an equality filter; repeated keys must all match.
    filters = list(request.query_params.multi_items())
    result = await service.serve_dataset(store, address, sub_path=sub_path, index=index, filters=filters)
    return schemas.ServeResponse(
        message="Data fetched successfully.",
        matched_count=result.matched_count,
        filters=_filters_echo(filters),
        result_records=result.records,
    )


@router.get("/serve/{address}", response_model=schemas.ServeResponse)
async def serve(
    address: str,
    request: Request,
    store: DatasetStore = Depends(get_store),
) -> schemas.ServeResponse:
    return await _serve(request, store, address)


@router.get("/serve/{address}/{sub_path}", response_model=schemas.ServeResponse)
async def serve_sub_path(
    address: str,
    sub_path: str,
    request: Request,
    store: DatasetStore = Depends(get_store),
) -> schemas.ServeResponse:
    return await _serve(request, store, address, sub_path=sub_path)


@router.get("/serve/{address}/{sub_path}/{index}", response_model=schemas.ServeResponse)
async def serve_sub_path_index(
    address: str,
    sub_path: str,
    index: str,
    request: Request,
    store: DatasetStore = Depends(get_store),
) -> schemas.ServeResponse:
    return await _serve(request, store, address, sub_path=sub_path, index=index)
