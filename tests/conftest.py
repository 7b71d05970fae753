"""Shared pytest fixtures.

Provides:
- frames: small in-memory tables keyed by table name, one legacy vendor table included
- frame_source: FrameRowSource over those frames
- sql_source: SqlRowSource over the same tables in in-memory SQLite
- client: AsyncClient against the FastAPI app with the row source overridden
"""

from typing import Dict

import pandas as pd
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from market_core.cache import TTLCache
from market_core.data import (
    COMPANIES,
    MARKET_BY_COUNTRY,
    MARKET_TOTALS,
    VENDOR_COMPANIES,
    VENDOR_MARKET_REVENUE_2024,
)
from market_core.sources import FrameRowSource, SqlRowSource
from market_core.table_query import CachedTableQueryService, TableQueryService
from market_core.vendor_datasets import VENDOR_DATASETS


VENDOR_FUNDINGS = VENDOR_DATASETS["fundings-investments"].table

COMPANY_ROWS = [
    {"id": "c1", "name": "Apex Additive", "city": "Austin", "state": "Texas", "country": "USA",
     "website": "https://apex.example", "company_type": "service", "description": "Metal PBF bureau",
     "created_at": "2024-01-15"},
    {"id": "c2", "name": "Beacon Printworks", "city": "Boston", "state": "Massachusetts", "country": "United States",
     "website": "https://beacon.example", "company_type": "service", "description": "Polymer parts",
     "created_at": "2024-02-03"},
    {"id": "c3", "name": "Cobalt Systems", "city": "Munich", "state": "Bavaria", "country": "Germany",
     "website": "https://cobalt.example", "company_type": "equipment", "description": "Laser machines",
     "created_at": "2023-11-20"},
    {"id": "c4", "name": "Delta Resins", "city": "Leeds", "state": "West Yorkshire", "country": "United Kingdom",
     "website": "https://delta.example", "company_type": "material", "description": "Photopolymer resins",
     "created_at": "2023-08-01"},
    {"id": "c5", "name": "Ember Forge", "city": "Eindhoven", "state": "North Brabant", "country": "Netherlands",
     "website": "https://ember.example", "company_type": "equipment", "description": "Wire arc DED",
     "created_at": "2024-05-12"},
]

MARKET_TOTAL_ROWS = [
    {"year": 2023, "type": "Past revenue", "segment": "Materials", "total_value": 100.0},
    {"year": 2023, "type": "Past revenue", "segment": "Printing services", "total_value": 300.0},
    {"year": 2024, "type": "Past revenue", "segment": "Materials", "total_value": 150.0},
    {"year": 2024, "type": "Average forecast", "segment": "Materials", "total_value": 999.0},
    {"year": 2024, "type": "Past revenue", "segment": "Printing services", "total_value": 350.0},
    {"year": 2025, "type": "Average forecast", "segment": "Materials", "total_value": 200.0},
    {"year": 2025, "type": "Past revenue", "segment": "Materials", "total_value": 777.0},
    {"year": 2026, "type": "Average forecast", "segment": "Total", "total_value": 900.0},
]

COUNTRY_ROWS = [
    {"year": 2024, "country": "USA", "segment": "Printing services", "value": 500.0},
    {"year": 2024, "country": "United States", "segment": "Materials", "value": 100.0},
    {"year": 2024, "country": "Germany", "segment": "Printer sales & servicing", "value": 300.0},
    {"year": 2024, "country": "China", "segment": "Printing services", "value": 50.0},
    {"year": 2024, "country": "Japan", "segment": "Materials", "value": 50.0},
    {"year": 2023, "country": "USA", "segment": "Printing services", "value": 400.0},
]

VENDOR_REVENUE_ROWS = [
    {"country": "USA", "segment": "Printing services", "revenue_usd": 70.0},
    {"country": "Germany", "segment": "Materials", "revenue_usd": 30.0},
]

EQUIPMENT_ROWS = [
    {"company_name": "Cobalt Systems", "country": "Germany", "segment": "System manufacturer",
     "number_of_printers": 40.0, "process": "SLM", "material_type": "Metal", "material_format": "Powder",
     "printer_manufacturer": "Cobalt", "printer_model": "C-400"},
    {"company_name": "Ember Forge", "country": "Holland", "segment": "System manufacturer",
     "number_of_printers": 6.0, "process": "DED-arc", "material_type": "Metal", "material_format": "Wire",
     "printer_manufacturer": "Ember", "printer_model": "WAAM-2"},
    {"company_name": "Apex Additive", "country": "USA", "segment": "Printing services",
     "number_of_printers": 12.0, "process": "PBF-LB", "material_type": "Metal", "material_format": "Powder",
     "printer_manufacturer": "Cobalt", "printer_model": "C-400"},
    {"company_name": "Beacon Printworks", "country": "United States", "segment": "Printing services",
     "number_of_printers": 8.0, "process": "SLS", "material_type": "Polymer", "material_format": "Powder",
     "printer_manufacturer": "Polyfab", "printer_model": "P-1"},
    {"company_name": "Fjord Fabrication", "country": "Norway", "segment": "Printing services",
     "number_of_printers": 3.0, "process": "FDM", "material_type": "Plastic", "material_format": "Filament",
     "printer_manufacturer": "Extrudo", "printer_model": "X2"},
]


FUNDING_ROWS = [
    {"id": 1, "year": 2023, "month": "March", "company_name": "Apex Additive", "country": "USA",
     "amount_millions_usd": 12.5, "funding_round": "Series A", "lead_investor": "Forge Ventures", "notes": None},
    {"id": 2, "year": 2024, "month": "June", "company_name": "Cobalt Systems", "country": "Germany",
     "amount_millions_usd": 40.0, "funding_round": "Series B", "lead_investor": "Laser Capital", "notes": "Expansion"},
    {"id": 3, "year": 2024, "month": "January", "company_name": "Beacon Printworks", "country": "United States",
     "amount_millions_usd": 3.0, "funding_round": "Seed", "lead_investor": "Harbor Fund", "notes": None},
]


def _frame(rows) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    if "year" in df.columns:
        df["year"] = df["year"].astype("Int64")
    return df


@pytest.fixture
def frames() -> Dict[str, pd.DataFrame]:
    return {
        COMPANIES: _frame(COMPANY_ROWS),
        MARKET_TOTALS: _frame(MARKET_TOTAL_ROWS),
        MARKET_BY_COUNTRY: _frame(COUNTRY_ROWS),
        VENDOR_MARKET_REVENUE_2024: _frame(VENDOR_REVENUE_ROWS),
        VENDOR_COMPANIES: _frame(EQUIPMENT_ROWS),
        VENDOR_FUNDINGS: _frame(FUNDING_ROWS),
    }


@pytest.fixture
def frame_source(frames) -> FrameRowSource:
    return FrameRowSource(frames=frames)


@pytest.fixture
def sql_engine(frames):
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    for name, df in frames.items():
        df.to_sql(name, engine, index=False)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_source(sql_engine) -> SqlRowSource:
    return SqlRowSource(sql_engine)


@pytest.fixture
async def client(frame_source):
    """AsyncClient with the row source and table service bound to the test frames."""
    from market_api.main import app, get_row_source, get_table_service

    service = CachedTableQueryService(TableQueryService(frame_source), TTLCache())
    app.dependency_overrides[get_row_source] = lambda: frame_source
    app.dependency_overrides[get_table_service] = lambda: service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
