"""Exportable datasets: which rows, which columns, which id key."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from market_core.data import COMPANIES
from market_core.errors import DatasetNotFoundError
from market_core.export import (
    COMPANY_COLUMNS,
    EQUIPMENT_COLUMNS,
    MARKET_COLUMNS,
    ColumnDef,
    ExportFile,
    ExportFormat,
    export_rows,
)
from market_core.filters import FilterState
from market_core.metrics_market import load_country_figures, load_equipment, rows_for_countries
from market_core.records import Company, parse_rows
from market_core.sources import RowSource
from market_core.vendor_datasets import VENDOR_DATASETS, vendor_rows


Loader = Callable[[RowSource, FilterState, Optional[str]], List[Mapping[str, Any]]]


@dataclass(frozen=True)
class ExportDataset:
    name: str
    loader: Loader
    columns: Tuple[ColumnDef, ...]
    id_key: str
    base_filename: str


def unique_row_ids(rows: List[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Suffix repeated `id` values (`a`, `a#2`, `a#3`) so every row is selectable on its own."""
    seen: Dict[str, int] = {}
    out: List[Mapping[str, Any]] = []
    for row in rows:
        key = str(row.get("id"))
        seen[key] = seen.get(key, 0) + 1
        out.append(row if seen[key] == 1 else {**row, "id": f"{key}#{seen[key]}"})
    return out


def _companies(source: RowSource, filters: FilterState, segment: Optional[str]) -> List[Mapping[str, Any]]:
    rows = [c.to_export_row() for c in parse_rows(Company, source.query_all(COMPANIES))]
    return unique_row_ids(rows_for_countries(rows, filters))


def _equipment(source: RowSource, filters: FilterState, segment: Optional[str]) -> List[Mapping[str, Any]]:
    return unique_row_ids([r.to_export_row() for r in load_equipment(source, filters, segment=segment)])


def _market(source: RowSource, filters: FilterState, segment: Optional[str]) -> List[Mapping[str, Any]]:
    figures = [f for f in load_country_figures(source) if segment is None or f.segment == segment]
    return unique_row_ids(rows_for_countries([f.to_export_row() for f in figures], filters))


DATASETS: Dict[str, ExportDataset] = {
    "companies": ExportDataset("companies", _companies, COMPANY_COLUMNS, "id", "am-companies"),
    "equipment": ExportDataset("equipment", _equipment, EQUIPMENT_COLUMNS, "id", "am-equipment"),
    "market": ExportDataset("market", _market, MARKET_COLUMNS, "id", "am-market-by-country"),
}


def _vendor_loader(key: str) -> Loader:
    def load(source: RowSource, filters: FilterState, segment: Optional[str]) -> List[Mapping[str, Any]]:
        return unique_row_ids(rows_for_countries(vendor_rows(source, key), filters))

    return load


DATASETS.update(
    {
        key: ExportDataset(
            key,
            _vendor_loader(key),
            tuple(ColumnDef(col, header) for col, header in vendor.columns),
            "id",
            f"am-vendor-{key}",
        )
        for key, vendor in VENDOR_DATASETS.items()
    }
)


def get_dataset(name: str) -> ExportDataset:
    try:
        return DATASETS[name]
    except KeyError:
        raise DatasetNotFoundError(f"Unknown export dataset: {name}") from None


def export_dataset(
    source: RowSource,
    name: str,
    fmt: ExportFormat = "csv",
    *,
    filters: Optional[FilterState] = None,
    segment: Optional[str] = None,
    selected_ids: Optional[Sequence[Any]] = None,
    extras: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> ExportFile:
    dataset = get_dataset(name)
    filters = filters or FilterState()
    rows = dataset.loader(source, filters, segment)
    return export_rows(
        rows,
        dataset.columns,
        dataset.base_filename,
        fmt,
        filters=filters,
        extras=extras,
        selected_ids=selected_ids,
        id_key=dataset.id_key,
        now=now,
    )
