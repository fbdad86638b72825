"""In-memory store of completed searches, bounded by entry count and age."""
import logging
import time
from typing import Callable, Optional

from cachetools import TTLCache

from aipa import config
from aipa.schemas import StoredSearch

log = logging.getLogger(__name__)


class SearchStore:
    """TTL cache with LRU eviction; `save` is last-write-wins, `get` refreshes recency."""

    def __init__(
        self,
        max_entries: int = config.SEARCH_CACHE_MAX,
        ttl_seconds: float = config.SEARCH_CACHE_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.ttl_seconds = ttl_seconds
        self._cache: TTLCache = TTLCache(maxsize=self.max_entries, ttl=ttl_seconds, timer=clock)

    def save(self, search: StoredSearch) -> None:
        self._cache[search.id] = search
        log.debug("[SearchStore] saved %s (%d cached)", search.id, len(self._cache))

    def get(self, search_id: str) -> Optional[StoredSearch]:
        self._cache.expire()
        return self._cache.get(search_id)

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)
