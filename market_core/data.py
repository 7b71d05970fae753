from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Tuple

import pandas as pd

from market_core.errors import DatasetNotFoundError, UpstreamQueryError
from market_core.normalize import to_number


logger = logging.getLogger(__name__)

COMPANIES = "companies"
MARKET_TOTALS = "market_totals"
MARKET_BY_COUNTRY = "market_by_country_segment"
VENDOR_MARKET_REVENUE_2024 = "vendor_am_market_revenue_2024"
VENDOR_MARKET_SIZE = "vendor_total_am_market_size"
VENDOR_COMPANIES = "vendor_companies_merged"

# Raw vendor exports carry spreadsheet headers (padding included); map them to table columns.
COLUMN_ALIASES: Dict[str, Dict[str, str]] = {
    COMPANIES: {
        "Company name": "name",
        "Website": "website",
        "Headquarters": "country",
        "City": "city",
        "State / province": "state",
    },
    MARKET_TOTALS: {
        "Year": "year",
        "Type": "type",
        "Segment": "segment",
        " Past revenue (USD) ": "total_value",
        "Past revenue (USD)": "total_value",
    },
    VENDOR_MARKET_SIZE: {
        "Year": "year",
        "Type": "type",
        "Segment": "segment",
        " Past revenue (USD) ": "revenue_usd",
        "Past revenue (USD)": "revenue_usd",
    },
    VENDOR_MARKET_REVENUE_2024: {
        "Country": "country",
        "Segment": "segment",
        " Revenue (USD) ": "revenue_usd",
        "Revenue (USD)": "revenue_usd",
    },
    MARKET_BY_COUNTRY: {
        "Year": "year",
        "Country": "country",
        "Segment": "segment",
        "Value": "value",
    },
    VENDOR_COMPANIES: {
        "Company name": "company_name",
        "Country": "country",
        "Segment": "segment",
        "Number of printers": "number_of_printers",
        "Process": "process",
        "Material type": "material_type",
        "Material format": "material_format",
        "Printer manufacturer": "printer_manufacturer",
        "Printer model": "printer_model",
    },
}

YEAR_COLUMNS = ("year",)
MONEY_COLUMNS = ("total_value", "value", "revenue_usd", "number_of_printers")
TEXT_COLUMNS = (
    "id",
    "name",
    "city",
    "state",
    "country",
    "company_type",
    "description",
    "segment",
    "type",
    "process",
    "material_type",
    "material_format",
    "printer_manufacturer",
    "printer_model",
    "company_name",
    "created_at",
)


def table_path(data_dir: Path, table: str) -> Path:
    return Path(data_dir) / f"{table}.json"


def file_signature(path: Path) -> Tuple[str, float]:
    return str(path), path.stat().st_mtime


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string").str.strip()
            df[col] = series.replace({"nan": pd.NA, "None": pd.NA, "": pd.NA})
    return df


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = df[col].map(to_number)
    return df


def ensure_year_cols(df: pd.DataFrame, cols: Iterable[str] = YEAR_COLUMNS) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").astype("Int64")
    return df


def harmonize_table(table: str, raw: pd.DataFrame) -> pd.DataFrame:
    df = raw.rename(columns=COLUMN_ALIASES.get(table, {}))
    df = df.loc[:, ~df.columns.duplicated()]
    df = coerce_str_safe(df, TEXT_COLUMNS)
    df = numericize(df, MONEY_COLUMNS)
    return ensure_year_cols(df)


@lru_cache(maxsize=32)
def _load_table_cached(table: str, signature: Tuple[str, float]) -> pd.DataFrame:
    path = Path(signature[0])
    try:
        raw = pd.read_json(path, orient="records", dtype=False, convert_dates=False, keep_default_dates=False)
    except ValueError as exc:
        raise UpstreamQueryError(f"Could not parse {path.name}: {exc}", table=table) from exc
    logger.debug("loaded %s rows from %s", len(raw), path)
    return harmonize_table(table, raw)


def load_table(table: str, data_dir: Path) -> pd.DataFrame:
    """Load `<data_dir>/<table>.json`, memoized on the file's mtime."""
    path = table_path(data_dir, table)
    if not path.exists():
        raise DatasetNotFoundError(f"Data file not found: {path}")
    return _load_table_cached(table, file_signature(path))
