"""Row sources: the queryable backing store behind the API.

Both implementations answer the same two calls, so the table service and
the market compute functions never know whether rows came from static JSON
files or a relational database.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy import MetaData, String, Table, cast, create_engine, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from market_core.data import load_table
from market_core.errors import DatasetNotFoundError, UpstreamQueryError
from market_core.settings import Settings, get_settings


logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class RowSource(ABC):
    @abstractmethod
    def query(
        self,
        table: str,
        *,
        search: Optional[str] = None,
        search_fields: Sequence[str] = (),
        equals: Optional[Mapping[str, Any]] = None,
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
        sort_by: Optional[str] = None,
        ascending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Row], int]:
        """Return one page of matching rows and the pre-pagination match count."""

    @abstractmethod
    def query_all(
        self,
        table: str,
        *,
        columns: Optional[Sequence[str]] = None,
        equals: Optional[Mapping[str, Any]] = None,
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> List[Row]:
        ...


def _records(df: pd.DataFrame) -> List[Row]:
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


def _sort_key(s: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(s):
        return s
    return s.astype("string").str.lower()


class FrameRowSource(RowSource):
    """Rows held in pandas DataFrames, one per table.

    With `frames` the tables are fixed; otherwise each table is read from
    `<data_dir>/<table>.json` on demand.
    """

    def __init__(self, data_dir: Optional[Path] = None, frames: Optional[Dict[str, pd.DataFrame]] = None) -> None:
        self._data_dir = data_dir
        self._frames = frames

    def _frame(self, table: str) -> pd.DataFrame:
        if self._frames is not None:
            if table not in self._frames:
                raise DatasetNotFoundError(f"Unknown table: {table}")
            return self._frames[table]
        if self._data_dir is None:
            raise DatasetNotFoundError(f"No data directory configured for table {table}")
        return load_table(table, self._data_dir)

    @staticmethod
    def _mask(
        df: pd.DataFrame,
        table: str,
        equals: Optional[Mapping[str, Any]],
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> pd.Series:
        mask = pd.Series(True, index=df.index)
        if df.empty:
            return mask
        for col, value in (equals or {}).items():
            if col not in df.columns:
                raise UpstreamQueryError(f"column {table}.{col} does not exist", table=table)
            mask &= df[col].astype("string").eq(str(value)).fillna(False).astype(bool)
        for col, values in (isin or {}).items():
            if not values:
                continue
            if col not in df.columns:
                raise UpstreamQueryError(f"column {table}.{col} does not exist", table=table)
            mask &= df[col].astype("string").isin([str(v) for v in values]).fillna(False).astype(bool)
        return mask

    def query(
        self,
        table: str,
        *,
        search: Optional[str] = None,
        search_fields: Sequence[str] = (),
        equals: Optional[Mapping[str, Any]] = None,
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
        sort_by: Optional[str] = None,
        ascending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Row], int]:
        df = self._frame(table)
        mask = self._mask(df, table, equals, isin)
        if search:
            term = search.lower()
            hit = pd.Series(False, index=df.index)
            for col in search_fields:
                if col in df.columns:
                    hit |= df[col].astype("string").str.lower().str.contains(term, regex=False).fillna(False).astype(bool)
            mask &= hit

        matched = df[mask]
        total = int(len(matched))
        if sort_by and sort_by in matched.columns:
            matched = matched.sort_values(
                sort_by,
                ascending=ascending,
                na_position="last",
                kind="mergesort",
                key=_sort_key,
            )
        stop = None if limit is None else offset + limit
        return _records(matched.iloc[offset:stop]), total

    def query_all(
        self,
        table: str,
        *,
        columns: Optional[Sequence[str]] = None,
        equals: Optional[Mapping[str, Any]] = None,
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> List[Row]:
        df = self._frame(table)
        matched = df[self._mask(df, table, equals, isin)]
        if columns:
            matched = matched[[c for c in columns if c in matched.columns]]
        return _records(matched)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlRowSource(RowSource):
    """Rows from a relational store through SQLAlchemy Core; tables are reflected on first use."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str) -> "SqlRowSource":
        return cls(create_engine(url, pool_pre_ping=True))

    def _table(self, name: str) -> Table:
        with self._lock:
            if name not in self._tables:
                try:
                    self._tables[name] = Table(name, self._metadata, autoload_with=self._engine)
                except NoSuchTableError as exc:
                    raise DatasetNotFoundError(f"Unknown table: {name}") from exc
                except SQLAlchemyError as exc:
                    raise UpstreamQueryError(f"Failed to reflect {name}: {exc}", table=name) from exc
            return self._tables[name]

    def _conditions(
        self,
        t: Table,
        equals: Optional[Mapping[str, Any]],
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> List[Any]:
        conditions = []
        for col, value in (equals or {}).items():
            if col not in t.c:
                raise UpstreamQueryError(f"column {t.name}.{col} does not exist", table=t.name)
            conditions.append(t.c[col] == value)
        for col, values in (isin or {}).items():
            if not values:
                continue
            if col not in t.c:
                raise UpstreamQueryError(f"column {t.name}.{col} does not exist", table=t.name)
            conditions.append(t.c[col].in_(list(values)))
        return conditions

    def query(
        self,
        table: str,
        *,
        search: Optional[str] = None,
        search_fields: Sequence[str] = (),
        equals: Optional[Mapping[str, Any]] = None,
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
        sort_by: Optional[str] = None,
        ascending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Row], int]:
        t = self._table(table)
        conditions = self._conditions(t, equals, isin)
        if search:
            pattern = f"%{_escape_like(search)}%"
            cols = [t.c[c] for c in search_fields if c in t.c]
            if cols:
                conditions.append(or_(*[cast(c, String).ilike(pattern, escape="\\") for c in cols]))

        stmt = select(t).where(*conditions)
        count_stmt = select(func.count()).select_from(t).where(*conditions)
        if sort_by and sort_by in t.c:
            col = t.c[sort_by]
            stmt = stmt.order_by(col.asc() if ascending else col.desc())
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            with self._engine.connect() as conn:
                total = int(conn.execute(count_stmt).scalar_one())
                rows = [dict(r._mapping) for r in conn.execute(stmt)]
        except SQLAlchemyError as exc:
            raise UpstreamQueryError(f"Failed to query {table}: {exc}", table=table) from exc
        return rows, total

    def query_all(
        self,
        table: str,
        *,
        columns: Optional[Sequence[str]] = None,
        equals: Optional[Mapping[str, Any]] = None,
        isin: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> List[Row]:
        t = self._table(table)
        selected = [t.c[c] for c in columns or () if c in t.c] or [t]
        stmt = select(*selected).where(*self._conditions(t, equals, isin))
        try:
            with self._engine.connect() as conn:
                return [dict(r._mapping) for r in conn.execute(stmt)]
        except SQLAlchemyError as exc:
            raise UpstreamQueryError(f"Failed to query {table}: {exc}", table=table) from exc


def build_row_source(settings: Optional[Settings] = None) -> RowSource:
    settings = settings or get_settings()
    if settings.DATA_SOURCE == "db":
        logger.info("row source: database")
        return SqlRowSource.from_url(settings.DATABASE_URL)
    logger.info("row source: json files in %s", settings.DATA_DIR)
    return FrameRowSource(data_dir=settings.DATA_DIR)
