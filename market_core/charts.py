from __future__ import annotations

from typing import Any, Dict, List, Sequence

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def market_totals_chart(chart_rows: List[Dict[str, Any]], segments: Sequence[str]) -> Dict[str, Any]:
    df = pd.DataFrame(chart_rows)
    value_vars = [s for s in segments if s in df.columns]
    long_df = df.melt(id_vars=["year"], value_vars=value_vars, var_name="segment", value_name="value").dropna()
    hover = alt.selection_point(fields=["segment"], on="mouseover", empty="all")
    bars = (
        alt.Chart(long_df)
        .mark_bar()
        .encode(
            x=alt.X("year:O", title="Year", axis=alt.Axis(format="d", grid=False)),
            y=alt.Y("sum(value):Q", title="Revenue (USD)", axis=alt.Axis(format="$~s", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("segment:N", title="Segment"),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.3)),
            tooltip=["year", "segment", alt.Tooltip("value:Q", format="$,.0f")],
        )
        .add_params(hover)
        .properties(height=280)
    )
    return to_vega_spec(bars)


def top_countries_chart(top: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(top)
    bars = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("value:Q", title="Revenue (USD)", axis=alt.Axis(format="$~s")),
            y=alt.Y("country:N", sort="-x", title=None),
            tooltip=[
                "country",
                alt.Tooltip("value:Q", format="$,.0f"),
                alt.Tooltip("percentage:Q", title="Share %", format=".2f"),
            ],
        )
        .properties(height=max(120, 24 * len(df)))
    )
    return to_vega_spec(bars)


def country_counts_chart(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    df = pd.DataFrame(rows)
    bars = (
        alt.Chart(df)
        .mark_bar(color="#2563eb")
        .encode(
            x=alt.X("company_count:Q", title="Companies"),
            y=alt.Y("country:N", sort="-x", title=None),
            tooltip=["country", "company_count", "total_machines"],
        )
    )
    return to_vega_spec(bars)
