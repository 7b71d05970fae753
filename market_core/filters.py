from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from market_core.normalize import canonical_segment, normalize_country


ALL_SENTINEL = "all"

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100
# Row offsets must fit a signed 64-bit SQL integer.
MAX_OFFSET = 2 ** 62

DEFAULT_VENDOR_LIMIT = 100
MAX_VENDOR_LIMIT = 1000

DEFAULT_MARKET_LIMIT = 1000
DEFAULT_TOP_N = 10
MAX_TOP_N = 50

# Request value -> row-source column. Nothing outside this map reaches ORDER BY.
SORTABLE_FIELDS: Dict[str, str] = {
    "name": "name",
    "city": "city",
    "state": "state",
    "country": "country",
    "company_type": "company_type",
    "created_at": "created_at",
}
DEFAULT_SORT_FIELD = "name"

SEARCH_FIELDS: Tuple[str, ...] = ("name", "city", "state", "country", "description")


@dataclass(frozen=True)
class FilterState:
    technology_ids: Tuple[str, ...] = ()
    material_ids: Tuple[str, ...] = ()
    process_categories: Tuple[str, ...] = ()
    size_ranges: Tuple[str, ...] = ()
    countries: Tuple[str, ...] = ()
    states: Tuple[str, ...] = ()
    vendor_material_types: Tuple[str, ...] = ()
    vendor_material_formats: Tuple[str, ...] = ()
    vendor_printer_manufacturers: Tuple[str, ...] = ()
    vendor_printer_models: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in self.__dataclass_fields__)


@dataclass(frozen=True)
class TableQuery:
    page: int = DEFAULT_PAGE
    per_page: int = DEFAULT_PER_PAGE
    sort_by: str = DEFAULT_SORT_FIELD
    sort_dir: str = "asc"
    q: Optional[str] = None
    company_type: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def ascending(self) -> bool:
        return self.sort_dir != "desc"

    def equality_filters(self) -> Dict[str, str]:
        pairs = {"company_type": self.company_type, "state": self.state, "country": self.country}
        return {k: v for k, v in pairs.items() if v is not None}


@dataclass(frozen=True)
class VendorDataQuery:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_VENDOR_LIMIT
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: str = "asc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def ascending(self) -> bool:
        return self.sort_order != "desc"


@dataclass(frozen=True)
class MarketQuery:
    year: Optional[int] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    segment: Optional[str] = None
    country: Optional[str] = None
    limit: int = DEFAULT_MARKET_LIMIT
    top: int = DEFAULT_TOP_N


def clean_filter_value(value: object) -> Optional[str]:
    """Strip an equality filter value; blank and "all" mean unset."""
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() == ALL_SENTINEL:
        return None
    return s


def _as_int(value: object, default: Optional[int]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        out = float(str(value).strip())
    except ValueError:
        return default
    if math.isnan(out) or math.isinf(out):
        return default
    return int(out)


def _as_str_tuple(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = values.split(",")
    out = []
    for v in values:
        s = clean_filter_value(v)
        if s is not None and s not in out:
            out.append(s)
    return tuple(out)


def split_multi(value: Optional[str]) -> Tuple[str, ...]:
    """Comma-separated query parameter -> tuple of non-blank values."""
    return _as_str_tuple(value)


def normalize_filter_state(raw: Optional[Mapping[str, Any]]) -> FilterState:
    raw = raw or {}
    return FilterState(**{name: _as_str_tuple(raw.get(name)) for name in FilterState.__dataclass_fields__})


def _page(value: object, page_size: int) -> int:
    page = _as_int(value, DEFAULT_PAGE)
    if page is None or page < 1:
        return DEFAULT_PAGE
    return min(page, MAX_OFFSET // page_size + 1)


def normalize_table_query(raw: Mapping[str, Any]) -> TableQuery:
    per_page = _as_int(raw.get("perPage"), DEFAULT_PER_PAGE)
    per_page = max(1, min(MAX_PER_PAGE, per_page if per_page is not None else DEFAULT_PER_PAGE))

    page = _page(raw.get("page"), per_page)

    sort_key = str(raw.get("sortBy") or DEFAULT_SORT_FIELD).strip().lower()
    sort_by = SORTABLE_FIELDS.get(sort_key, DEFAULT_SORT_FIELD)
    sort_dir = "desc" if str(raw.get("sortDir") or "").strip().lower() == "desc" else "asc"

    q = (str(raw.get("q")) if raw.get("q") is not None else "").strip() or None

    return TableQuery(
        page=page,
        per_page=per_page,
        sort_by=sort_by,
        sort_dir=sort_dir,
        q=q,
        company_type=clean_filter_value(raw.get("type")),
        state=clean_filter_value(raw.get("state")),
        country=clean_filter_value(raw.get("country")),
    )


def normalize_market_query(raw: Mapping[str, Any]) -> MarketQuery:
    def year_of(key: str) -> Optional[int]:
        return _as_int(clean_filter_value(raw.get(key)), None)

    limit = _as_int(raw.get("limit"), DEFAULT_MARKET_LIMIT) or DEFAULT_MARKET_LIMIT
    top = _as_int(raw.get("top"), DEFAULT_TOP_N) or DEFAULT_TOP_N
    segment = clean_filter_value(raw.get("segment"))
    country = clean_filter_value(raw.get("country"))
    return MarketQuery(
        year=year_of("year"),
        start_year=year_of("startYear"),
        end_year=year_of("endYear"),
        segment=canonical_segment(segment) if segment else None,
        country=normalize_country(country) if country else None,
        limit=max(1, min(DEFAULT_MARKET_LIMIT, limit)),
        top=max(1, min(MAX_TOP_N, top)),
    )


def normalize_vendor_query(raw: Mapping[str, Any], sortable: Iterable[str]) -> VendorDataQuery:
    """Paging, search and sort for a vendor dataset; `sortBy` must name one of `sortable`."""
    limit = _as_int(raw.get("limit"), DEFAULT_VENDOR_LIMIT)
    limit = max(1, min(MAX_VENDOR_LIMIT, limit if limit is not None else DEFAULT_VENDOR_LIMIT))
    sort_key = str(raw.get("sortBy") or "").strip()
    search = (str(raw.get("search")) if raw.get("search") is not None else "").strip() or None
    return VendorDataQuery(
        page=_page(raw.get("page"), limit),
        limit=limit,
        search=search,
        sort_by=sort_key if sort_key in set(sortable) else None,
        sort_order="desc" if str(raw.get("sortOrder") or "").strip().lower() == "desc" else "asc",
    )
