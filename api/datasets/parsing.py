"""
Upload parsing: raw bytes -> canonical record list.

Supported inputs (dispatched on the filename suffix):
- `.csv`          first row is the header, values stay text
- `.xlsx`/`.xls`  first sheet only, first row is the header, cell types kept
- `.json`         an array of objects, or a single object

Everything here is pure; nothing touches the store.
"""

from __future__ import annotations

import io
import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import numpy as np
import pandas as pd

from .errors import MalformedInput, UnsupportedFormat
from .models import Record, SourceFormat

SUFFIX_FORMATS: dict[str, SourceFormat] = {
    ".csv": SourceFormat.CSV,
    ".xlsx": SourceFormat.EXCEL,
    ".xls": SourceFormat.EXCEL,
    ".json": SourceFormat.JSON,
}


@dataclass(frozen=True)
class ParseResult:
    records: list[Record]
    source_format: SourceFormat


def _file_ext(name: str) -> str:
    name = (name or "").strip().lower()
    # A bare hint like ".csv" has no suffix as far as pathlib is concerned.
    if name.startswith(".") and name.count(".") == 1:
        return name
    return Path(name).suffix


def resolve_format(format_hint: str) -> SourceFormat:
    """
    Map a filename (or bare suffix) to its source format.
    """
    ext = _file_ext(format_hint)
    source_format = SUFFIX_FORMATS.get(ext)
    if source_format is None:
        raise UnsupportedFormat(
            f"Unsupported file format '{ext or format_hint}'. Allowed: {sorted(SUFFIX_FORMATS)}"
        )
    return source_format


def parse(data: bytes, format_hint: str) -> ParseResult:
    """
    Parse an uploaded file body. An empty body is not an error: it yields no records.
    """
    source_format = resolve_format(format_hint)
    if not data or not data.strip():
        return ParseResult(records=[], source_format=source_format)

    records = _PARSERS[source_format](data)
    return ParseResult(records=records, source_format=source_format)


def parse_inline(payload: Any) -> ParseResult:
    """
    Parse an inline payload: a list/dict, or the JSON text (or bytes) of one.
    """
    if isinstance(payload, (str, bytes)):
        raw = payload.encode("utf-8") if isinstance(payload, str) else payload
        records = _parse_json(raw) if raw.strip() else []
    else:
        records = records_from_value(payload)
    return ParseResult(records=records, source_format=SourceFormat.JSON)


def records_from_value(value: Any) -> list[Record]:
    if isinstance(value, dict):
        return [dict(value)]
    if isinstance(value, list):
        out: list[Record] = []
        for i, item in enumerate(value):
            if not isinstance(item, dict):
                raise MalformedInput(f"Element {i} of the JSON array is not an object.")
            out.append(dict(item))
        return out
    raise MalformedInput("JSON document must be an object or an array of objects.")


def _parse_json(data: bytes) -> list[Record]:
    try:
        # json.loads on bytes detects UTF-8/16/32 (and a UTF-8 BOM) by itself.
        value = json.loads(data, parse_constant=_reject_constant, parse_float=_finite_float)
    except ValueError as e:
        raise MalformedInput(f"Invalid JSON: {e}") from e
    return records_from_value(value)


def _reject_constant(name: str) -> Any:
    raise MalformedInput(f"Invalid JSON: '{name}' is not a JSON number.")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise MalformedInput(f"Invalid JSON: number '{text}' is out of range.")
    return value


def _unique_columns(names: list[str]) -> list[str]:
    """
    Disambiguate repeated header names the way pandas does: a, a.1, a.2, ...
    """
    used: set[str] = set()
    counts: dict[str, int] = {}
    out: list[str] = []
    for name in names:
        count = counts.get(name, 0)
        candidate = name if count == 0 else f"{name}.{count}"
        while candidate in used:
            count += 1
            candidate = f"{name}.{count}"
        counts[name] = count + 1
        used.add(candidate)
        out.append(candidate)
    return out


def _parse_csv(data: bytes) -> list[Record]:
    try:
        # header=None: the header is just the first row, so a data row wider
        # than it is a tokenizing error instead of being taken as an index column.
        frame = pd.read_csv(
            io.BytesIO(data),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        return []
    except ValueError as e:
        # ParserError and UnicodeDecodeError are both ValueErrors.
        raise MalformedInput(f"Could not parse CSV: {e}") from e

    rows = list(frame.itertuples(index=False, name=None))
    if not rows:
        return []

    columns = _unique_columns(["" if _is_missing(c) else str(c) for c in rows[0]])
    records: list[Record] = []
    for row in rows[1:]:
        # Short rows come back as NaN for the missing trailing cells.
        records.append({col: ("" if _is_missing(value) else value) for col, value in zip(columns, row)})
    return records


def _parse_excel(data: bytes) -> list[Record]:
    """
    Read the first sheet. pandas picks openpyxl (.xlsx) or xlrd (.xls) from the bytes.
    """
    try:
        frame = pd.read_excel(io.BytesIO(data), sheet_name=0)
    except ImportError:
        raise
    except Exception as e:
        raise MalformedInput("Could not read spreadsheet (file may be corrupted or unsupported).") from e

    columns = [str(c) for c in frame.columns]
    records: list[Record] = []
    for row in frame.itertuples(index=False, name=None):
        record: Record = {}
        for col, value in zip(columns, row):
            # Empty cells are left out of the record entirely.
            if _is_missing(value):
                continue
            record[col] = _cell_value(value)
        records.append(record)
    return records


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, dict)):
        return False
    return bool(pd.isna(value))


def _cell_value(value: Any) -> Any:
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


_PARSERS: dict[SourceFormat, Callable[[bytes], list[Record]]] = {
    SourceFormat.CSV: _parse_csv,
    SourceFormat.EXCEL: _parse_excel,
    SourceFormat.JSON: _parse_json,
}
