from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
import logging
import math
from typing import Literal, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from market_api.schemas import ExportRequestModel, HealthResponse
from market_core.cache import TTLCache
from market_core.datasets import export_dataset
from market_core.errors import DatasetNotFoundError
from market_core.filters import (
    FilterState,
    normalize_filter_state,
    normalize_market_query,
    normalize_table_query,
    normalize_vendor_query,
    split_multi,
)
from market_core.log_config import configure_logging
from market_core.metrics_market import (
    compute_catalog,
    compute_company_filters,
    compute_country_heatmap,
    compute_market_countries,
    compute_market_totals,
    compute_vendor_heatmap,
)
from market_core.settings import get_settings
from market_core.sources import RowSource, build_row_source
from market_core.table_query import CachedTableQueryService, TableQueryService
from market_core.vendor_datasets import VENDOR_DATASETS, browse_vendor_dataset, list_vendor_datasets


settings = get_settings()
configure_logging(settings)

app = FastAPI(title="AM Market Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_row_source() -> RowSource:
    return build_row_source(get_settings())


@lru_cache(maxsize=1)
def get_table_service() -> CachedTableQueryService:
    s = get_settings()
    cache: TTLCache = TTLCache(maxsize=s.TABLE_CACHE_MAX_ENTRIES, ttl=s.TABLE_CACHE_TTL_SECONDS)
    return CachedTableQueryService(TableQueryService(get_row_source()), cache)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception) -> JSONResponse:
    status_code = 404 if isinstance(exc, DatasetNotFoundError) else 500
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/health", response_model=HealthResponse)
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/companies/table")
def companies_table(
    q: Optional[str] = Query(default=None),
    type: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    country: Optional[str] = Query(default=None),
    sortBy: Optional[str] = Query(default=None),
    sortDir: Optional[str] = Query(default=None),
    page: Optional[str] = Query(default=None),
    perPage: Optional[str] = Query(default=None),
    service: CachedTableQueryService = Depends(get_table_service),
):
    try:
        query = normalize_table_query(
            {
                "q": q,
                "type": type,
                "state": state,
                "country": country,
                "sortBy": sortBy,
                "sortDir": sortDir,
                "page": page,
                "perPage": perPage,
            }
        )
        return _json({"data": service.run(query)})
    except Exception as exc:
        logger.exception("companies_table failed")
        return _error(exc)


@app.get("/companies/filters")
def companies_filters(source: RowSource = Depends(get_row_source)):
    try:
        return _json(compute_company_filters(source))
    except Exception as exc:
        logger.exception("companies_filters failed")
        return _error(exc)


@app.get("/companies/country-heatmap")
def companies_country_heatmap(
    type: Optional[str] = Query(default=None),
    source: RowSource = Depends(get_row_source),
):
    try:
        return _json(compute_country_heatmap(source, type))
    except Exception as exc:
        logger.exception("companies_country_heatmap failed")
        return _error(exc)


@app.get("/vendor/country-heatmap")
def vendor_country_heatmap(
    segment: Optional[str] = Query(default=None),
    country: Optional[str] = Query(default=None),
    process: Optional[str] = Query(default=None),
    material_type: Optional[str] = Query(default=None),
    material_format: Optional[str] = Query(default=None),
    printer_manufacturer: Optional[str] = Query(default=None),
    printer_model: Optional[str] = Query(default=None),
    source: RowSource = Depends(get_row_source),
):
    if not (segment or "").strip():
        return JSONResponse(status_code=400, content={"error": "segment is required", "type": "BadRequest"})
    try:
        filters = FilterState(
            countries=split_multi(country),
            process_categories=split_multi(process),
            vendor_material_types=split_multi(material_type),
            vendor_material_formats=split_multi(material_format),
            vendor_printer_manufacturers=split_multi(printer_manufacturer),
            vendor_printer_models=split_multi(printer_model),
        )
        return _json(compute_vendor_heatmap(source, segment.strip(), filters))
    except Exception as exc:
        logger.exception("vendor_country_heatmap failed")
        return _error(exc)


@app.get("/market/totals")
def market_totals(
    year: Optional[str] = Query(default=None),
    startYear: Optional[str] = Query(default=None),
    endYear: Optional[str] = Query(default=None),
    segment: Optional[str] = Query(default=None),
    source: RowSource = Depends(get_row_source),
):
    try:
        query = normalize_market_query({"year": year, "startYear": startYear, "endYear": endYear, "segment": segment})
        return _json(compute_market_totals(source, query))
    except Exception as exc:
        logger.exception("market_totals failed")
        return _error(exc)


@app.get("/market/countries")
def market_countries(
    year: Optional[str] = Query(default=None),
    segment: Optional[str] = Query(default=None),
    country: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    top: Optional[str] = Query(default=None),
    source: RowSource = Depends(get_row_source),
):
    try:
        query = normalize_market_query(
            {"year": year, "segment": segment, "country": country, "limit": limit, "top": top}
        )
        return _json(compute_market_countries(source, query))
    except Exception as exc:
        logger.exception("market_countries failed")
        return _error(exc)


@app.get("/lookup/catalog")
def lookup_catalog(source: RowSource = Depends(get_row_source)):
    try:
        return _json(compute_catalog(source))
    except Exception as exc:
        logger.exception("lookup_catalog failed")
        return _error(exc)


@app.get("/vendor-data")
def vendor_data_index():
    return _json({"datasets": list_vendor_datasets()})


@app.get("/vendor-data/{dataset}")
def vendor_data(
    dataset: str,
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    sortBy: Optional[str] = Query(default=None),
    sortOrder: Optional[str] = Query(default=None),
    source: RowSource = Depends(get_row_source),
):
    if dataset not in VENDOR_DATASETS:
        return JSONResponse(status_code=400, content={"error": "Invalid dataset specified", "type": "BadRequest"})
    try:
        query = normalize_vendor_query(
            {"page": page, "limit": limit, "search": search, "sortBy": sortBy, "sortOrder": sortOrder},
            VENDOR_DATASETS[dataset].column_names,
        )
        return _json(browse_vendor_dataset(source, dataset, query))
    except Exception as exc:
        logger.exception("vendor_data %s failed", dataset)
        return _error(exc)


@app.post("/export/{dataset}")
def export(
    dataset: str,
    body: Optional[ExportRequestModel] = None,
    format: Literal["csv", "xlsx"] = Query(default="csv"),
    source: RowSource = Depends(get_row_source),
):
    body = body or ExportRequestModel()
    try:
        export_file = export_dataset(
            source,
            dataset,
            format,
            filters=normalize_filter_state(body.filters.model_dump()),
            segment=body.segment,
            selected_ids=body.selected_ids,
            extras=body.extras,
        )
    except Exception as exc:
        logger.exception("export %s failed", dataset)
        return _error(exc)
    return Response(
        content=export_file.content,
        media_type=export_file.media_type,
        headers={"Content-Disposition": f"attachment; filename={export_file.filename}"},
    )
