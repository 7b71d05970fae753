from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from market_core.aggregate import (
    aggregate_by_country,
    aggregate_by_year_segment,
    distinct_sorted,
    summarize_by_segment,
    top_n_with_share,
)
from market_core.charts import country_counts_chart, market_totals_chart, top_countries_chart
from market_core.data import (
    COMPANIES,
    MARKET_BY_COUNTRY,
    MARKET_TOTALS,
    VENDOR_COMPANIES,
    VENDOR_MARKET_REVENUE_2024,
    VENDOR_MARKET_SIZE,
)
from market_core.errors import DatasetNotFoundError
from market_core.filters import FilterState, MarketQuery
from market_core.normalize import TOTAL_SEGMENT, normalize_country, to_number
from market_core.records import EquipmentRecord, MarketFigure, VendorRow, parse_rows
from market_core.sources import Row, RowSource
from market_core.taxonomy import (
    categorize_material_family,
    categorize_technology,
    normalize_material,
    normalize_process,
    sort_materials,
    sort_processes,
)
from market_core.vendor_datasets import VENDOR_DATASETS


logger = logging.getLogger(__name__)

LAST_REPORTED_YEAR = 2024
VENDOR_REVENUE_YEAR = 2024
PAST_SCENARIO = "past revenue"
FORECAST_SCENARIO = "average forecast"

# Heatmap `type` -> segment label in the merged vendor table.
EQUIPMENT_SEGMENTS: Dict[str, str] = {
    "equipment": "System manufacturer",
    "service": "Printing services",
}

# Older databases split the merged vendor table per segment.
LEGACY_VENDOR_TABLES: Dict[str, str] = {
    "System manufacturer": VENDOR_DATASETS["am-systems-manufacturers"].table,
    "Printing services": VENDOR_DATASETS["print-services-global"].table,
}

# FilterState field -> vendor table column, pushed down to the row source.
VENDOR_FILTER_COLUMNS: Dict[str, str] = {
    "vendor_material_types": "material_type",
    "vendor_material_formats": "material_format",
    "vendor_printer_manufacturers": "printer_manufacturer",
    "vendor_printer_models": "printer_model",
}


def _rows_or_empty(source: RowSource, table: str, **kwargs: Any) -> List[Row]:
    try:
        return source.query_all(table, **kwargs)
    except DatasetNotFoundError:
        logger.info("table %s not available", table)
        return []


def keep_scenario(figure: MarketFigure) -> bool:
    """Reported years keep past revenue, later years keep the average forecast."""
    if not figure.type:
        return True
    label = figure.type.strip().lower()
    if figure.year is not None and figure.year <= LAST_REPORTED_YEAR:
        return label == PAST_SCENARIO
    return label == FORECAST_SCENARIO


def _in_year_range(figure: MarketFigure, query: MarketQuery) -> bool:
    if figure.year is None:
        return False
    if query.year is not None:
        return figure.year == query.year
    if query.start_year is not None and figure.year < query.start_year:
        return False
    if query.end_year is not None and figure.year > query.end_year:
        return False
    return True


def load_market_totals(source: RowSource) -> List[MarketFigure]:
    rows = _rows_or_empty(source, MARKET_TOTALS)
    if not rows:
        logger.info("market totals empty, falling back to %s", VENDOR_MARKET_SIZE)
        rows = _rows_or_empty(source, VENDOR_MARKET_SIZE)
    return parse_rows(MarketFigure, rows)


def compute_market_totals(source: RowSource, query: MarketQuery) -> Dict[str, Any]:
    figures = [
        f
        for f in load_market_totals(source)
        if keep_scenario(f)
        and _in_year_range(f, query)
        and (query.segment is None or f.segment == query.segment)
    ]
    chart_rows = aggregate_by_year_segment(figures)
    segments = distinct_sorted(f.segment for f in figures if f.segment != TOTAL_SEGMENT)
    years = [f.year for f in figures if f.year is not None]

    charts: Dict[str, Any] = {}
    if chart_rows and segments:
        charts["totals_by_segment"] = market_totals_chart(chart_rows, segments)

    return {
        "data": chart_rows,
        "segments": segments,
        "raw": [f.to_export_row() for f in figures],
        "metadata": {
            "totalRecords": len(figures),
            "yearRange": {"min": min(years) if years else None, "max": max(years) if years else None},
        },
        "charts": charts,
    }


def load_country_figures(source: RowSource, year: Optional[int] = None) -> List[MarketFigure]:
    equals = {"year": year} if year is not None else None
    figures = parse_rows(MarketFigure, _rows_or_empty(source, MARKET_BY_COUNTRY, equals=equals))
    if figures:
        return figures
    if year is not None and year != VENDOR_REVENUE_YEAR:
        return []
    # The vendor revenue table is a 2024 snapshot without a year column.
    logger.info("country split empty, falling back to %s", VENDOR_MARKET_REVENUE_2024)
    vendor = parse_rows(MarketFigure, _rows_or_empty(source, VENDOR_MARKET_REVENUE_2024))
    return [replace(f, year=VENDOR_REVENUE_YEAR) for f in vendor]


def compute_market_countries(source: RowSource, query: MarketQuery) -> Dict[str, Any]:
    figures = [
        f
        for f in load_country_figures(source, query.year)
        if f.country
        and (query.segment is None or f.segment == query.segment)
        and (query.country is None or f.country == query.country)
    ]
    countries = distinct_sorted(f.country for f in figures)
    segments = distinct_sorted(f.segment for f in figures)
    top = top_n_with_share(((f.country, f.value) for f in figures), n=query.top, key_name="country")

    return {
        "data": [f.to_export_row() for f in figures[: query.limit]],
        "summary": {
            "year": query.year,
            "totalValue": float(sum(to_number(f.value) for f in figures)),
            "totalCountries": len(countries),
            "totalSegments": len(segments),
            "topCountries": top,
            "bySegment": summarize_by_segment(figures),
        },
        "filters": {"availableCountries": countries, "availableSegments": segments},
        "charts": {"top_countries": top_countries_chart(top)} if top else {},
    }


def compute_country_heatmap(source: RowSource, company_type: Optional[str] = None) -> Dict[str, Any]:
    """Company counts per country.

    `equipment` and `service` read the merged vendor table for the matching
    segment and also total its printers; anything else reads the directory.
    """
    segment = EQUIPMENT_SEGMENTS.get((company_type or "").strip().lower())
    if segment is None:
        data = aggregate_by_country(_rows_or_empty(source, COMPANIES, columns=["country"]))
    else:
        rows = _rows_or_empty(source, VENDOR_COMPANIES, equals={"segment": segment})
        data = aggregate_by_country(parse_rows(EquipmentRecord, rows), measure_field="number_of_printers")
    return {
        "type": company_type,
        "data": data,
        "charts": {"countries": country_counts_chart(data)} if data else {},
    }


def _matches_equipment_filters(record: EquipmentRecord, countries: Sequence[str], processes: Sequence[str]) -> bool:
    if countries and record.country not in countries:
        return False
    if processes and record.process not in processes and record.canonical_process not in processes:
        return False
    return True


def load_equipment(
    source: RowSource,
    filters: Optional[FilterState] = None,
    segment: Optional[str] = None,
) -> List[EquipmentRecord]:
    """Vendor equipment rows for one segment (or all), filtered by the vendor dimensions.

    Material and printer dimensions are pushed down to the row source. Country
    and process values are compared after normalization, so "USA" matches
    "United States" and "SLM" matches "PBF-LB (Metal)".
    """
    filters = filters or FilterState()
    equals = {"segment": segment} if segment else None
    isin = {col: getattr(filters, name) for name, col in VENDOR_FILTER_COLUMNS.items() if getattr(filters, name)}
    try:
        rows = source.query_all(VENDOR_COMPANIES, equals=equals, isin=isin or None)
    except DatasetNotFoundError:
        legacy = LEGACY_VENDOR_TABLES.get(segment or "")
        if legacy is None:
            raise
        logger.info("%s missing, reading legacy table %s", VENDOR_COMPANIES, legacy)
        rows = [VendorRow.from_row(r, dataset=legacy).to_export_row() for r in _rows_or_empty(source, legacy)]

    countries = [c for c in (normalize_country(v) for v in filters.countries) if c]
    processes = list(filters.process_categories)
    records = parse_rows(EquipmentRecord, rows)
    return [r for r in records if _matches_equipment_filters(r, countries, processes)]


def compute_vendor_heatmap(source: RowSource, segment: str, filters: Optional[FilterState] = None) -> Dict[str, Any]:
    records = load_equipment(source, filters, segment=segment)
    data = aggregate_by_country(records, measure_field="number_of_printers")
    return {
        "segment": segment,
        "data": data,
        "filters": {
            "processes": sort_processes({p for p in (r.canonical_process for r in records) if p}),
            "materials": sort_materials({m for m in (r.canonical_material for r in records) if m}),
        },
        "charts": {"countries": country_counts_chart(data)} if data else {},
    }


def compute_company_filters(source: RowSource) -> Dict[str, Any]:
    rows = _rows_or_empty(source, COMPANIES, columns=["company_type", "country"])
    return {
        "types": distinct_sorted(r.get("company_type") for r in rows),
        "countries": distinct_sorted(normalize_country(r.get("country")) for r in rows),
    }


def _catalog_entries(values: Iterable[Any], categorize: Any, canonical: Any, key: str) -> List[Dict[str, Any]]:
    names = distinct_sorted(str(v).strip() for v in values if v is not None and str(v).strip())
    return [
        {"id": name, "name": name, "category": categorize(name), key: canonical(name)}
        for name in names
    ]


def compute_catalog(source: RowSource) -> Dict[str, Any]:
    """Technology and material lookup lists derived from the vendor table."""
    rows = _rows_or_empty(source, VENDOR_COMPANIES, columns=["process", "material_type"])
    return {
        "technologies": _catalog_entries(
            (r.get("process") for r in rows), categorize_technology, normalize_process, "process_category"
        ),
        "materials": _catalog_entries(
            (r.get("material_type") for r in rows), categorize_material_family, normalize_material, "material_category"
        ),
    }


def rows_for_countries(rows: Iterable[Mapping[str, Any]], filters: FilterState) -> List[Mapping[str, Any]]:
    countries = {c for c in (normalize_country(v) for v in filters.countries) if c}
    states = {s.strip().lower() for s in filters.states}
    out = []
    for row in rows:
        if countries and row.get("country") not in countries:
            continue
        if states and str(row.get("state") or "").strip().lower() not in states:
            continue
        out.append(row)
    return out
