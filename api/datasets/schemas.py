"""
Dataset API schemas (response models).

JSON field names are camelCase (`displayName`, `servingURL`, ...); FastAPI
serializes response models by alias.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .models import Dataset, Record


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DatasetSummary(_CamelModel):
    id: int
    display_name: str = Field(alias="displayName")
    serving_url: str = Field(alias="servingURL")
    parameters_descriptor: str = Field(alias="parametersDescriptor")
    endpoints_descriptor: str = Field(alias="endpointsDescriptor")
    visibility: str
    record_count: int = Field(alias="recordCount")
    example_usage_snippet: str = Field(alias="exampleUsageSnippet")


class DatasetDetail(DatasetSummary):
    owner: str
    address: str
    description: str
    category: str
    version: str
    source_format: str = Field(alias="sourceFormat")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    records: list[Record] | None = None


class CreateDatasetResponse(_CamelModel):
    message: str
    dataset: DatasetSummary


class UpdateDatasetResponse(_CamelModel):
    message: str
    dataset: DatasetDetail


class DeleteDatasetResponse(_CamelModel):
    message: str
    id: int


class DatasetListResponse(_CamelModel):
    datasets: list[DatasetDetail]
    count: int
    limit: int
    offset: int


class ServeResponse(_CamelModel):
    message: str
    matched_count: int = Field(alias="matchedCount")
    filters: dict[str, Any]
    result_records: list[Record] = Field(alias="resultRecords")


def to_summary(dataset: Dataset) -> DatasetSummary:
    return DatasetSummary(
        id=dataset.id,
        display_name=dataset.display_name,
        serving_url=dataset.serving_url,
        parameters_descriptor=dataset.parameters_descriptor,
        endpoints_descriptor=dataset.endpoints_descriptor,
        visibility=dataset.visibility.value,
        record_count=dataset.record_count,
        example_usage_snippet=dataset.example_usage_snippet,
    )


def to_detail(dataset: Dataset, *, include_records: bool = False) -> DatasetDetail:
    return DatasetDetail(
        **to_summary(dataset).model_dump(),
        owner=dataset.owner,
        address=dataset.address,
        description=dataset.description,
        category=dataset.category,
        version=dataset.version,
        source_format=dataset.source_format.value,
        created_at=dataset.created_at,
        updated_at=dataset.updated_at,
        records=dataset.records if include_records else None,
    )
