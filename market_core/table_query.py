from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from market_core.cache import TTLCache, cache_key
from market_core.data import COMPANIES
from market_core.errors import DashboardError, UpstreamQueryError
from market_core.filters import SEARCH_FIELDS, TableQuery
from market_core.normalize import normalize_country
from market_core.records import Company
from market_core.sources import RowSource


logger = logging.getLogger(__name__)


class TableQueryService:
    """Filtered, sorted, paginated view over one row-source table."""

    def __init__(self, source: RowSource, table: str = COMPANIES) -> None:
        self.source = source
        self.table = table

    def stored_countries(self, country: str) -> List[str]:
        """Stored spellings of `country` ('USA', 'United States', ...) present in the table."""
        wanted = normalize_country(country)
        rows = self.source.query_all(self.table, columns=["country"])
        found = {str(r["country"]) for r in rows if r.get("country") is not None}
        return sorted(v for v in found if normalize_country(v) == wanted) or [country]

    def run(self, query: TableQuery) -> Dict[str, Any]:
        equals = query.equality_filters()
        country = equals.pop("country", None)
        try:
            isin = {"country": self.stored_countries(country)} if country is not None else None
            rows, total = self.source.query(
                self.table,
                search=query.q,
                search_fields=SEARCH_FIELDS,
                equals=equals,
                isin=isin,
                sort_by=query.sort_by,
                ascending=query.ascending,
                offset=query.offset,
                limit=query.per_page,
            )
        except DashboardError:
            raise
        except Exception as exc:
            raise UpstreamQueryError(f"Failed to fetch {self.table}: {exc}", table=self.table) from exc

        return {
            "items": [Company.from_row(r).to_export_row() for r in rows],
            "page": query.page,
            "perPage": query.per_page,
            "total": total,
            "sortBy": query.sort_by,
            "sortDir": query.sort_dir,
            "q": query.q,
            "filters": {"type": query.company_type, "state": query.state, "country": query.country},
        }


class CachedTableQueryService:
    """Memoizes `TableQueryService.run` per normalized query; failures are not cached."""

    def __init__(self, service: TableQueryService, cache: Optional[TTLCache[Dict[str, Any]]] = None) -> None:
        self.service = service
        self.cache: TTLCache[Dict[str, Any]] = cache if cache is not None else TTLCache()

    def run(self, query: TableQuery) -> Dict[str, Any]:
        key = cache_key(query)
        hit = self.cache.get(key)
        if hit is not None:
            logger.debug("table cache hit %s", key)
            return hit
        logger.debug("table cache miss %s", key)
        payload = self.service.run(query)
        self.cache.set(key, payload)
        return payload
