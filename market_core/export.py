"""CSV / XLSX export of in-memory rows.

Filenames follow `{base}_{YYYY-MM-DD_HHMMSS}{_filters_...}.{ext}` so a
downloaded file says where it came from: the suffix lists how many values
are selected in each active filter dimension plus any extra context such
as the number of selected rows.
"""

from __future__ import annotations

import io
import logging
import numbers
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple

import pandas as pd
from openpyxl import Workbook

from market_core.errors import ExportSerializationError
from market_core.filters import FilterState


logger = logging.getLogger(__name__)

ExportFormat = Literal["csv", "xlsx"]

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DEFAULT_SHEET_NAME = "Export"

# FilterState field -> filename label, in suffix order.
FILTER_LABELS: Tuple[Tuple[str, str], ...] = (
    ("technology_ids", "tech"),
    ("material_ids", "mat"),
    ("process_categories", "proc"),
    ("size_ranges", "size"),
    ("countries", "ctry"),
    ("states", "state"),
    ("vendor_material_types", "vmat"),
    ("vendor_material_formats", "vfmt"),
    ("vendor_printer_manufacturers", "vmfr"),
    ("vendor_printer_models", "vmodel"),
)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]+")
_REPEATED_DASH = re.compile(r"-+")


@dataclass(frozen=True)
class ColumnDef:
    key: str
    header: str
    map: Optional[Callable[[Mapping[str, Any]], Any]] = None

    def value(self, row: Mapping[str, Any]) -> Any:
        if self.map is not None:
            return self.map(row)
        return row.get(self.key)


@dataclass(frozen=True)
class ExportFile:
    content: bytes
    filename: str
    media_type: str


def format_timestamp(when: Optional[datetime] = None) -> str:
    return (when or datetime.now()).strftime("%Y-%m-%d_%H%M%S")


def sanitize_filename(name: str) -> str:
    cleaned = _REPEATED_DASH.sub("-", _UNSAFE_CHARS.sub("-", name or "")).strip("-")
    return cleaned or "export"


def build_filter_suffix(
    filters: Optional[FilterState] = None,
    extras: Optional[Mapping[str, Any]] = None,
) -> str:
    parts: List[str] = []
    if filters is not None:
        for field_name, label in FILTER_LABELS:
            count = len(getattr(filters, field_name))
            if count > 0:
                parts.append(f"{label}-{count}")
    for key, value in (extras or {}).items():
        if value is None or value == "":
            continue
        parts.append(f"{key}-{value}")
    return f"_filters_{'_'.join(parts)}" if parts else ""


def build_filename(
    base: str,
    fmt: ExportFormat,
    filters: Optional[FilterState] = None,
    extras: Optional[Mapping[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
) -> str:
    ext = "csv" if fmt == "csv" else "xlsx"
    return f"{sanitize_filename(base)}_{format_timestamp(now)}{build_filter_suffix(filters, extras)}.{ext}"


def _cell(value: Any) -> Any:
    if isinstance(value, (list, tuple, set)):
        return "; ".join(str(v) for v in value)
    if isinstance(value, dict):
        return ", ".join(f"{k}={v}" for k, v in value.items())
    return value


def _xlsx_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, datetime, date)):
        return value
    if isinstance(value, numbers.Number):
        return None if pd.isna(value) else value
    return str(value)


def _table(rows: Iterable[Mapping[str, Any]], columns: Sequence[ColumnDef]) -> List[List[Any]]:
    return [[_cell(col.value(row)) for col in columns] for row in rows]


def to_csv(rows: Iterable[Mapping[str, Any]], columns: Sequence[ColumnDef]) -> str:
    """Header line plus one line per row; values with `,` `"` or newlines are quoted."""
    frame = pd.DataFrame(_table(rows, columns), columns=[c.header for c in columns], dtype=object)
    return frame.to_csv(index=False, lineterminator="\n", na_rep="")


def to_xlsx(
    rows: Iterable[Mapping[str, Any]],
    columns: Sequence[ColumnDef],
    *,
    sheet_name: str = DEFAULT_SHEET_NAME,
) -> bytes:
    try:
        wb = Workbook()
        ws = wb.active
        ws.title = sheet_name
        ws.append([c.header for c in columns])
        for values in _table(rows, columns):
            ws.append([_xlsx_value(v) for v in values])
        buf = io.BytesIO()
        wb.save(buf)
    except Exception as exc:
        logger.exception("xlsx export failed")
        raise ExportSerializationError(f"Could not build spreadsheet: {exc}") from exc
    return buf.getvalue()


def select_rows(
    rows: Sequence[Mapping[str, Any]],
    selected_ids: Optional[Iterable[Any]] = None,
    id_key: str = "id",
) -> List[Mapping[str, Any]]:
    """Keep only rows whose `id_key` is in `selected_ids`; no selection keeps everything."""
    wanted = {str(i) for i in selected_ids} if selected_ids is not None else set()
    if not wanted:
        return list(rows)
    return [row for row in rows if str(row.get(id_key)) in wanted]


def export_rows(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[ColumnDef],
    base: str,
    fmt: ExportFormat = "csv",
    *,
    filters: Optional[FilterState] = None,
    extras: Optional[Mapping[str, Any]] = None,
    selected_ids: Optional[Sequence[Any]] = None,
    id_key: str = "id",
    now: Optional[datetime] = None,
) -> ExportFile:
    effective = select_rows(rows, selected_ids, id_key)
    context: Dict[str, Any] = dict(extras or {})
    if selected_ids:
        context["selected"] = len({str(i) for i in selected_ids})
    context["rows"] = len(effective)
    filename = build_filename(base, fmt, filters, context, now=now)

    if fmt == "csv":
        content = to_csv(effective, columns).encode("utf-8")
        media_type = CSV_MEDIA_TYPE
    elif fmt == "xlsx":
        content = to_xlsx(effective, columns)
        media_type = XLSX_MEDIA_TYPE
    else:
        raise ExportSerializationError(f"Unsupported export format: {fmt}")
    logger.info("exported %s rows to %s", len(effective), filename)
    return ExportFile(content=content, filename=filename, media_type=media_type)


COMPANY_COLUMNS: Tuple[ColumnDef, ...] = (
    ColumnDef("name", "Company"),
    ColumnDef("company_type", "Type"),
    ColumnDef("city", "City"),
    ColumnDef("state", "State"),
    ColumnDef("country", "Country"),
    ColumnDef("website", "Website"),
)

EQUIPMENT_COLUMNS: Tuple[ColumnDef, ...] = (
    ColumnDef("company_name", "Company"),
    ColumnDef("country", "Country"),
    ColumnDef("segment", "Segment"),
    ColumnDef("process_category", "Process"),
    ColumnDef("material_category", "Material"),
    ColumnDef("printer_manufacturer", "Printer Manufacturer"),
    ColumnDef("printer_model", "Printer Model"),
    ColumnDef("number_of_printers", "Printers", map=lambda r: int(r.get("number_of_printers") or 0)),
)

MARKET_COLUMNS: Tuple[ColumnDef, ...] = (
    ColumnDef("year", "Year"),
    ColumnDef("segment", "Segment"),
    ColumnDef("country", "Country"),
    ColumnDef("value", "Revenue (USD)", map=lambda r: round(float(r.get("value") or 0), 2)),
)
