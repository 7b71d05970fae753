from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from market_core.filters import TableQuery


logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 256


class TTLCache(Generic[V]):
    """Bounded LRU map whose entries also expire `ttl` seconds after being stored.

    Reads and writes hold one lock, so concurrent request threads never see a
    half-updated map. Inserting past `maxsize` evicts the least recently used
    entry.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_MAX_ENTRIES,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, V]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def cache_key(query: TableQuery) -> str:
    """Serialize the fields that shape a table response; key order never matters."""
    return json.dumps(
        {
            "q": query.q or "",
            "type": query.company_type or "",
            "state": query.state or "",
            "country": query.country or "",
            "sortBy": query.sort_by,
            "sortDir": query.sort_dir,
            "page": query.page,
            "perPage": query.per_page,
        },
        sort_keys=True,
    )
