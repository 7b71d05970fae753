from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from market_core.normalize import TOTAL_SEGMENT, normalize_country, to_number
from market_core.records import MarketFigure


OTHER_SEGMENT = "Other"
PERCENT_DECIMALS = 2


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def share_pcts(values: Sequence[float]) -> List[float]:
    """Percentages of the sum of `values`, rounded so they add up to exactly 100.

    Largest-remainder rounding: every share is floored to PERCENT_DECIMALS and
    the leftover hundredths go to the shares with the largest remainders,
    earlier entries first on ties. A zero total gives all zeros.
    """
    arr = np.asarray([float(v) for v in values], dtype=float)
    total = float(arr.sum())
    if arr.size == 0 or not total:
        return [0.0] * int(arr.size)
    scale = 10 ** PERCENT_DECIMALS
    exact = arr / total * 100.0 * scale
    units = np.floor(exact)
    leftover = int(round(100 * scale - float(units.sum())))
    if leftover > 0:
        order = np.argsort(-(exact - units), kind="stable")
        units[order[:leftover]] += 1
    return [float(u) / scale for u in units]


def aggregate_by_country(
    rows: Iterable[Any],
    *,
    measure_field: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Count rows and sum a secondary measure per normalized country.

    Rows without a resolvable country are skipped. The result is sorted by
    row count, descending, with the country name breaking ties.
    """
    records = [
        (normalize_country(_field(r, "country")), to_number(_field(r, measure_field)) if measure_field else 0.0)
        for r in rows
    ]
    frame = pd.DataFrame(records, columns=["country", "measure"]).dropna(subset=["country"])
    if frame.empty:
        return []

    frame["n"] = 1
    grouped = (
        frame.groupby("country", sort=False)
        .agg(company_count=("n", "sum"), total_machines=("measure", "sum"))
        .reset_index()
        .sort_values(["company_count", "country"], ascending=[False, True], kind="mergesort")
    )
    shares = share_pcts(grouped["company_count"].tolist())
    return [
        {
            "country": str(r.country),
            "company_count": int(r.company_count),
            "total_machines": float(r.total_machines),
            "percentage": pct,
        }
        for r, pct in zip(grouped.itertuples(index=False), shares)
    ]


def top_n_with_share(
    pairs: Iterable[Tuple[Optional[str], object]],
    n: int = 10,
    *,
    key_name: str = "category",
) -> List[Dict[str, Any]]:
    """Merge duplicate categories, rank by value and keep the top `n`.

    Percentages are computed against the total of every category, including
    the ones that fall outside the top `n`.
    """
    frame = pd.DataFrame(
        [(c, to_number(v)) for c, v in pairs if c is not None and str(c).strip()],
        columns=[key_name, "value"],
    )
    if frame.empty:
        return []

    merged = (
        frame.groupby(key_name, sort=False)["value"]
        .sum()
        .reset_index()
        .sort_values(["value", key_name], ascending=[False, True], kind="mergesort")
    )
    merged["percentage"] = share_pcts(merged["value"].tolist())
    top = merged.head(max(0, int(n)))
    return [
        {key_name: str(row[0]), "value": float(row[1]), "percentage": float(row[2])}
        for row in top.itertuples(index=False)
    ]


def aggregate_by_year_segment(figures: Iterable[MarketFigure]) -> List[Dict[str, Any]]:
    """Chart rows: one dict per year with a column per segment plus `total`.

    Figures sharing a (year, segment) key are summed. Rows labelled with the
    "Total" segment only feed `total` for years that have no segment breakdown.
    """
    frame = pd.DataFrame(
        [(f.year, f.segment or OTHER_SEGMENT, to_number(f.value)) for f in figures if f.year is not None],
        columns=["year", "segment", "value"],
    )
    if frame.empty:
        return []

    sums = frame.groupby(["year", "segment"], sort=True)["value"].sum()
    by_year: Dict[int, Dict[str, Any]] = {}
    for (year, segment), value in sums.items():
        entry = by_year.setdefault(int(year), {"year": int(year)})
        entry[str(segment)] = float(value)

    for entry in by_year.values():
        reported_total = entry.pop(TOTAL_SEGMENT, None)
        parts = [v for k, v in entry.items() if k != "year"]
        entry["total"] = float(sum(parts)) if parts else float(reported_total or 0.0)
    return [by_year[y] for y in sorted(by_year)]


def summarize_by_segment(figures: Sequence[MarketFigure]) -> List[Dict[str, Any]]:
    frame = pd.DataFrame(
        [(f.segment, to_number(f.value)) for f in figures if f.segment],
        columns=["segment", "value"],
    )
    if frame.empty:
        return []
    grouped = frame.groupby("segment", sort=True)["value"].agg(total="sum", rows="size").reset_index()
    return [
        {"segment": str(r.segment), "value": float(r.total), "countries": int(r.rows)}
        for r in grouped.itertuples(index=False)
    ]


def distinct_sorted(values: Iterable[Optional[str]]) -> List[str]:
    return sorted({str(v) for v in values if v})
