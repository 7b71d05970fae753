"""Legacy vendor datasets: one spreadsheet tab per table, browsed page by page.

Each entry names its table and the (column, header) pairs shown in the
browser and in exports. Search runs over the text-like columns only; money,
year, amount, cost, time and date columns are left out.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Tuple

from market_core.errors import DashboardError, DatasetNotFoundError, UpstreamQueryError
from market_core.filters import VendorDataQuery
from market_core.records import VendorRow, composite_id
from market_core.sources import Row, RowSource


logger = logging.getLogger(__name__)

NON_TEXT_MARKERS: Tuple[str, ...] = ("_usd", "year", "amount", "cost", "time", "date")


@dataclass(frozen=True)
class VendorDataset:
    key: str
    table: str
    name: str
    description: str
    columns: Tuple[Tuple[str, str], ...]

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c for c, _ in self.columns)

    @property
    def headers(self) -> Tuple[str, ...]:
        return tuple(h for _, h in self.columns)

    @property
    def search_columns(self) -> Tuple[str, ...]:
        return tuple(c for c in self.column_names if not any(m in c for m in NON_TEXT_MARKERS))

    def default_sort(self) -> Tuple[str, bool]:
        if "company_name" in self.column_names:
            return "company_name", True
        return "created_at", False

    def to_item(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        fields = VendorRow.from_row(raw, dataset=self.key).to_export_row()
        item = {c: fields.get(c) for c in self.column_names}
        source_id = fields.get("id")
        item["id"] = str(source_id) if source_id is not None else composite_id(*item.values())
        return item

    def describe(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "table": self.table,
            "columns": list(self.column_names),
            "displayColumns": list(self.headers),
        }


_DATASETS: Tuple[VendorDataset, ...] = (
    VendorDataset(
        "company-information",
        "vendor_company_information",
        "Company Information",
        "Vendor company profiles and headquarters",
        (("company_name", "Company Name"), ("website", "Website"), ("headquarters", "Headquarters")),
    ),
    VendorDataset(
        "fundings-investments",
        "vendor_fundings_investments",
        "Fundings & Investments",
        "Investment rounds and funding data",
        (
            ("year", "Year"),
            ("month", "Month"),
            ("company_name", "Company Name"),
            ("country", "Country"),
            ("amount_millions_usd", "Amount (millions USD)"),
            ("funding_round", "Funding Round"),
            ("lead_investor", "Lead Investor"),
            ("notes", "Notes"),
        ),
    ),
    VendorDataset(
        "print-services-pricing",
        "vendor_print_service_pricing",
        "Print Services Pricing",
        "AM service pricing and lead time data",
        (
            ("company_name", "Company Name"),
            ("material_type", "Material Type"),
            ("material", "Material"),
            ("process", "Process"),
            ("quantity", "Quantity"),
            ("manufacturing_cost", "Manufacturing Cost"),
            ("day_ordered", "Day Ordered"),
            ("delivery_date", "Delivery Date"),
            ("lead_time", "Lead Time"),
            ("country", "Country"),
        ),
    ),
    VendorDataset(
        "am-market-revenue-2024",
        "vendor_am_market_revenue_2024",
        "AM Market Revenue 2024",
        "2024 market revenue by country and segment",
        (("revenue_usd", "Revenue (USD)"), ("country", "Country"), ("segment", "Segment")),
    ),
    VendorDataset(
        "mergers-acquisitions",
        "vendor_mergers_acquisitions",
        "Mergers & Acquisitions",
        "M&A transactions in AM industry",
        (
            ("deal_date", "Deal Date"),
            ("acquired_company", "Acquired Company"),
            ("acquiring_company", "Acquiring Company"),
            ("deal_size_millions", "Deal Size (millions)"),
            ("country", "Country"),
        ),
    ),
    VendorDataset(
        "company-roles",
        "vendor_company_roles",
        "Company Roles",
        "Company role categorization",
        (("company_name", "Company Name"), ("category", "Category")),
    ),
    VendorDataset(
        "revenue-by-industry-2024",
        "vendor_revenue_by_industry_2024",
        "Revenue by Industry 2024",
        "Industry segment revenue breakdown",
        (
            ("industry", "Industry"),
            ("share_of_revenue_percent", "Share of Revenue (%)"),
            ("revenue_usd", "Revenue (USD)"),
            ("region", "Region"),
            ("material", "Material"),
        ),
    ),
    VendorDataset(
        "total-am-market-size",
        "vendor_total_am_market_size",
        "Total AM Market Size",
        "Market size forecasts and historical data",
        (("year", "Year"), ("type", "Forecast Type"), ("segment", "Segment"), ("revenue_usd", "Revenue (USD)")),
    ),
    VendorDataset(
        "directory",
        "vendor_directory",
        "Directory",
        "Figure and sheet directory data",
        (("figure_name", "Figure Name"), ("sheet_name_and_link", "Sheet Name and Link"), ("v1", "V1"), ("notes", "Notes")),
    ),
    VendorDataset(
        "am-systems-manufacturers",
        "vendor_am_systems_manufacturers",
        "AM Systems Manufacturers",
        "AM printer and system manufacturers",
        (
            ("company_name", "Company Name"),
            ("segment", "Segment"),
            ("material_type", "Material Type"),
            ("material_format", "Material Format"),
            ("country", "Country"),
            ("process", "Process"),
        ),
    ),
    VendorDataset(
        "print-services-global",
        "vendor_print_services_global",
        "Global Printing Services",
        "Global print service providers",
        (
            ("company_name", "Company Name"),
            ("segment", "Segment"),
            ("material_type", "Material Type"),
            ("material_format", "Material Format"),
            ("country", "Country"),
            ("printer_manufacturer", "Printer Manufacturer"),
            ("printer_model", "Printer Model"),
            ("number_of_printers", "Number of Printers"),
            ("count_type", "Count Type"),
            ("process", "Process"),
            ("update_year", "Update Year"),
            ("additional_info", "Additional Info"),
        ),
    ),
)

VENDOR_DATASETS: Dict[str, VendorDataset] = {d.key: d for d in _DATASETS}


def get_vendor_dataset(key: str) -> VendorDataset:
    try:
        return VENDOR_DATASETS[key]
    except KeyError:
        raise DatasetNotFoundError(f"Unknown vendor dataset: {key}") from None


def list_vendor_datasets() -> List[Dict[str, Any]]:
    return [d.describe() for d in _DATASETS]


def browse_vendor_dataset(source: RowSource, key: str, query: VendorDataQuery) -> Dict[str, Any]:
    dataset = get_vendor_dataset(key)
    if query.sort_by:
        sort_by, ascending = query.sort_by, query.ascending
    else:
        sort_by, ascending = dataset.default_sort()
    try:
        rows, total = source.query(
            dataset.table,
            search=query.search,
            search_fields=dataset.search_columns,
            sort_by=sort_by,
            ascending=ascending,
            offset=query.offset,
            limit=query.limit,
        )
    except DashboardError:
        raise
    except Exception as exc:
        raise UpstreamQueryError(f"Failed to fetch {dataset.table}: {exc}", table=dataset.table) from exc

    return {
        "dataset": key,
        "config": dataset.describe(),
        "items": [dataset.to_item(r) for r in rows],
        "pagination": {
            "page": query.page,
            "limit": query.limit,
            "total": total,
            "pages": math.ceil(total / query.limit),
        },
        "filters": {"search": query.search, "sortBy": sort_by, "sortOrder": "asc" if ascending else "desc"},
        "rowCount": len(rows),
        "totalRows": total,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def vendor_rows(source: RowSource, key: str) -> List[Dict[str, Any]]:
    """Every row of a vendor dataset, shaped like `browse_vendor_dataset` items."""
    dataset = get_vendor_dataset(key)
    rows: List[Row] = source.query_all(dataset.table)
    logger.debug("loaded %s rows from %s", len(rows), dataset.table)
    return [dataset.to_item(r) for r in rows]
