import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from market_core.datasets import export_dataset
from market_core.errors import DashboardError
from market_core.filters import FilterState, normalize_market_query, normalize_table_query, normalize_vendor_query
from market_core.log_config import configure_logging
from market_core.metrics_market import (
    EQUIPMENT_SEGMENTS,
    compute_company_filters,
    compute_country_heatmap,
    compute_market_countries,
    compute_market_totals,
    compute_vendor_heatmap,
)
from market_core.settings import get_settings
from market_core.sources import RowSource, build_row_source
from market_core.table_query import TableQueryService
from market_core.vendor_datasets import VENDOR_DATASETS, browse_vendor_dataset


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(filters: FilterState) -> str:
    chips = []
    if filters.countries:
        chips.append(f"Countries: {', '.join(filters.countries)}")
    if filters.process_categories:
        chips.append(f"Processes: {', '.join(filters.process_categories)}")
    if filters.vendor_material_types:
        chips.append(f"Materials: {', '.join(filters.vendor_material_types)}")
    if not chips:
        chips.append("Filters: none")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str = ""):
    inject_base_styles()
    st.markdown(
        f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
        unsafe_allow_html=True,
    )
    if filter_summary_html:
        st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def render_export_buttons(
    dataset: str,
    filters: FilterState,
    *,
    segment: Optional[str] = None,
    selected_ids: Optional[List[str]] = None,
    key: str = "",
):
    cols = st.columns(2)
    for col, fmt, label in ((cols[0], "csv", "Export CSV"), (cols[1], "xlsx", "Export Excel")):
        try:
            export_file = export_dataset(
                source, dataset, fmt, filters=filters, segment=segment, selected_ids=selected_ids
            )
        except DashboardError as exc:
            col.warning(f"{label} unavailable: {exc}")
            continue
        col.download_button(
            label,
            data=export_file.content,
            file_name=export_file.filename,
            mime=export_file.media_type,
            key=f"export-{key or dataset}-{fmt}",
        )


def render_chart(payload: Dict[str, Any], name: str):
    spec = (payload.get("charts") or {}).get(name)
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)


# ---------- UI setup ----------
st.set_page_config(page_title="AM Market Dashboard", layout="wide")
configure_logging()
inject_base_styles()
st.title("Additive Manufacturing Market Dashboard")
st.caption("Company directory, country heatmaps and market-size analytics.")


@st.cache_resource
def get_source() -> RowSource:
    return build_row_source(get_settings())


source = get_source()

with st.sidebar:
    st.markdown("### Navigate")
    current_page = st.radio("Navigate", ["Directory", "Country Heatmap", "Market Size", "Vendor Report", "Vendor Data"], index=0)


def render_directory_page():
    render_page_header("Company Directory", "Directory")
    options = compute_company_filters(source)
    c1, c2, c3 = st.columns([4, 2, 2])
    q = c1.text_input("Search", "")
    company_type = c2.selectbox("Type", ["all"] + options["types"])
    country = c3.selectbox("Country", ["all"] + options["countries"])
    c4, c5, c6 = st.columns(3)
    sort_by = c4.selectbox("Sort by", ["name", "city", "state", "country", "company_type", "created_at"])
    sort_dir = c5.selectbox("Direction", ["asc", "desc"])
    page = c6.number_input("Page", min_value=1, value=1, step=1)

    query = normalize_table_query(
        {"q": q, "type": company_type, "country": country, "sortBy": sort_by, "sortDir": sort_dir, "page": page}
    )
    try:
        result = TableQueryService(source).run(query)
    except DashboardError as exc:
        st.error(str(exc))
        return

    with card(f"Companies ({result['total']})"):
        items = pd.DataFrame(result["items"])
        if items.empty:
            st.info("No companies match the current filters.")
            return
        st.dataframe(items.drop(columns=["description"], errors="ignore"), hide_index=True)
        selected = st.multiselect("Select rows to export (none = all)", items["id"].tolist())
        filters = FilterState(countries=(country,) if country != "all" else ())
        render_export_buttons("companies", filters, selected_ids=selected)


def render_heatmap_page():
    render_page_header("Country Heatmap", "Heatmap")
    kind = st.selectbox("Companies", ["all", *EQUIPMENT_SEGMENTS.keys()])
    payload = compute_country_heatmap(source, None if kind == "all" else kind)
    with card("Companies by country"):
        if not payload["data"]:
            st.info("No country data available.")
            return
        render_chart(payload, "countries")
        st.dataframe(pd.DataFrame(payload["data"]), hide_index=True)


def render_market_page():
    render_page_header("Market Size", "Market")
    c1, c2 = st.columns(2)
    start_year = c1.number_input("Start year", min_value=2000, max_value=2040, value=2020, step=1)
    end_year = c2.number_input("End year", min_value=2000, max_value=2040, value=2030, step=1)
    totals = compute_market_totals(source, normalize_market_query({"startYear": start_year, "endYear": end_year}))
    with card("Total AM market by segment"):
        if not totals["data"]:
            st.info("No market totals available.")
        else:
            render_chart(totals, "totals_by_segment")
            st.dataframe(pd.DataFrame(totals["data"]), hide_index=True)

    year = st.selectbox("Country split year", [2024, 2023, 2025])
    countries = compute_market_countries(source, normalize_market_query({"year": year}))
    summary = countries["summary"]
    with card(f"Revenue by country ({year})"):
        k1, k2, k3 = st.columns(3)
        k1.metric("Total revenue", f"${summary['totalValue']:,.0f}")
        k2.metric("Countries", summary["totalCountries"])
        k3.metric("Segments", summary["totalSegments"])
        render_chart(countries, "top_countries")
        if summary["bySegment"]:
            st.dataframe(pd.DataFrame(summary["bySegment"]), hide_index=True)
        render_export_buttons("market", FilterState(), key=f"market-{year}")


def render_vendor_page():
    render_page_header("Vendor Report", "Vendor")
    segment = st.selectbox("Segment", list(EQUIPMENT_SEGMENTS.values()))
    base = compute_vendor_heatmap(source, segment)
    c1, c2 = st.columns(2)
    processes = c1.multiselect("Process", base["filters"]["processes"])
    countries = c2.multiselect("Country", [row["country"] for row in base["data"]])
    filters = FilterState(countries=tuple(countries), process_categories=tuple(processes))
    payload = compute_vendor_heatmap(source, segment, filters) if not filters.is_empty() else base
    st.markdown(f"<div class='chip-row'>{format_filter_summary(filters)}</div>", unsafe_allow_html=True)
    with card("Installed printers by country"):
        if not payload["data"]:
            st.info("No vendor rows match the current filters.")
            return
        render_chart(payload, "countries")
        st.dataframe(pd.DataFrame(payload["data"]), hide_index=True)
        render_export_buttons("equipment", filters, segment=segment)


def render_vendor_data_page():
    render_page_header("Vendor Data", "Vendor data")
    key = st.selectbox("Dataset", list(VENDOR_DATASETS), format_func=lambda k: VENDOR_DATASETS[k].name)
    dataset = VENDOR_DATASETS[key]
    st.caption(dataset.description)
    c1, c2, c3 = st.columns([4, 2, 1])
    search = c1.text_input("Search", "", key="vendor-search")
    sort_by = c2.selectbox("Sort by", ["default", *dataset.column_names])
    page = c3.number_input("Page", min_value=1, value=1, step=1, key="vendor-page")
    query = normalize_vendor_query(
        {"search": search, "sortBy": None if sort_by == "default" else sort_by, "page": page, "limit": 50},
        dataset.column_names,
    )
    try:
        result = browse_vendor_dataset(source, key, query)
    except DashboardError as exc:
        st.error(str(exc))
        return

    pagination = result["pagination"]
    with card(f"{dataset.name} ({pagination['total']} rows, page {pagination['page']} of {max(1, pagination['pages'])})"):
        if not result["items"]:
            st.info("No rows match the current search.")
            return
        items = pd.DataFrame(result["items"])
        st.dataframe(items[list(dataset.column_names)].set_axis(list(dataset.headers), axis=1), hide_index=True)
        render_export_buttons(key, FilterState(), key=f"vendor-{key}")


if current_page == "Directory":
    render_directory_page()
elif current_page == "Country Heatmap":
    render_heatmap_page()
elif current_page == "Market Size":
    render_market_page()
elif current_page == "Vendor Report":
    render_vendor_page()
else:
    render_vendor_data_page()
