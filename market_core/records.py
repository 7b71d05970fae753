"""Typed views over the untyped rows a row source returns.

Each dataset kind lists its fields explicitly. `from_row` never raises on
partial data: text fields fall back to None and numeric fields go through
`to_number`. `to_export_row` gives the flat mapping the export pipeline
consumes.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from market_core.normalize import canonical_segment, normalize_country, to_int_or_none, to_number
from market_core.taxonomy import normalize_material, normalize_process


R = TypeVar("R")

_NON_WORD = re.compile(r"[^a-z0-9]+")


def composite_id(*parts: Any) -> str:
    """Pipe-joined key for rows without a source id; None becomes an empty part."""
    return "|".join("" if p is None else str(p) for p in parts)


def _text(row: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        s = str(value).strip()
        if s and s.lower() not in {"nan", "none", "null"}:
            return s
    return None


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    company_type: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Company":
        name = _text(row, "name", "Company name", "company_name") or ""
        return cls(
            id=_text(row, "id") or name,
            name=name,
            city=_text(row, "city"),
            state=_text(row, "state"),
            country=normalize_country(_text(row, "country", "Headquarters")),
            website=_text(row, "website", "Website"),
            company_type=_text(row, "company_type"),
            description=_text(row, "description"),
            created_at=_text(row, "created_at"),
        )

    def to_export_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EquipmentRecord:
    company_name: str
    country: Optional[str] = None
    segment: Optional[str] = None
    number_of_printers: float = 0.0
    process: Optional[str] = None
    material_type: Optional[str] = None
    material_format: Optional[str] = None
    printer_manufacturer: Optional[str] = None
    printer_model: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EquipmentRecord":
        return cls(
            company_name=_text(row, "company_name", "name", "Company name") or "",
            country=normalize_country(_text(row, "country", "Country")),
            segment=_text(row, "segment", "Segment"),
            number_of_printers=to_number(row.get("number_of_printers")),
            process=_text(row, "process", "Process"),
            material_type=_text(row, "material_type", "Material type"),
            material_format=_text(row, "material_format"),
            printer_manufacturer=_text(row, "printer_manufacturer"),
            printer_model=_text(row, "printer_model"),
            id=_text(row, "id"),
        )

    @property
    def canonical_process(self) -> Optional[str]:
        return normalize_process(self.process)

    @property
    def canonical_material(self) -> Optional[str]:
        return normalize_material(self.material_type)

    @property
    def row_id(self) -> str:
        if self.id:
            return self.id
        parts = (self.company_name, self.country, self.segment, self.process, self.printer_manufacturer, self.printer_model)
        return composite_id(*parts)

    def to_export_row(self) -> Dict[str, Any]:
        out = asdict(self)
        out["id"] = self.row_id
        out["process_category"] = self.canonical_process
        out["material_category"] = self.canonical_material
        return out


@dataclass(frozen=True)
class MarketFigure:
    year: Optional[int]
    segment: Optional[str]
    value: float = 0.0
    country: Optional[str] = None
    type: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MarketFigure":
        # market_totals exposes total_value, the country split and vendor tables use value / revenue_usd.
        raw_value = next(
            (row.get(k) for k in ("value", "total_value", "revenue_usd") if row.get(k) is not None),
            None,
        )
        return cls(
            year=to_int_or_none(row.get("year")),
            segment=canonical_segment(row.get("segment")),
            value=to_number(raw_value),
            country=normalize_country(row.get("country")),
            type=_text(row, "type"),
            id=_text(row, "id"),
        )

    @property
    def row_id(self) -> str:
        return self.id or composite_id(self.year, self.segment, self.country, self.type)

    def to_export_row(self) -> Dict[str, Any]:
        out = asdict(self)
        out["id"] = self.row_id
        return out


@dataclass(frozen=True)
class VendorRow:
    dataset: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any], *, dataset: str = "") -> "VendorRow":
        return cls(dataset=dataset, fields=dict(row))

    @property
    def country(self) -> Optional[str]:
        return normalize_country(_text(self.fields, "country", "Country"))

    def to_export_row(self) -> Dict[str, Any]:
        """Fields keyed by snake_case header ("Number of printers" -> number_of_printers)."""
        out = {_NON_WORD.sub("_", str(k).strip().lower()).strip("_"): v for k, v in self.fields.items()}
        if "country" in out:
            out["country"] = self.country
        return out


def parse_rows(kind: Type[R], rows: Iterable[Mapping[str, Any]]) -> List[R]:
    return [kind.from_row(row) for row in rows if row is not None]  # type: ignore[attr-defined]
