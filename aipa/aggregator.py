import asyncio
import logging
from typing import List, Optional, Sequence

from aipa import config
from aipa.adapters.base import SearchContext, SiteAdapter
from aipa.schemas import Listing

log = logging.getLogger(__name__)


class ListingAggregator:
    """Fans a search out to every adapter and merges the results.

    Adapters run one after another by default since several of them hit the
    same rate-limited upstreams. ``max_concurrency > 1`` runs them in parallel
    behind a semaphore. Either way a failing adapter only loses its own results.
    """

    def __init__(self, adapters: Sequence[SiteAdapter], max_concurrency: int = config.ADAPTER_CONCURRENCY):
        self.adapters = list(adapters)
        self.max_concurrency = max(1, max_concurrency)

    async def _call(self, adapter: SiteAdapter, ctx: SearchContext, sem: Optional[asyncio.Semaphore] = None) -> List[Listing]:
        try:
            if sem is None:
                results = await adapter.search_listings(ctx)
            else:
                async with sem:
                    results = await adapter.search_listings(ctx)
        except Exception as e:
            log.error("[Aggregator] %s failed: %s", adapter.site_id, e)
            return []
        log.info("[Aggregator] %s -> %d listings", adapter.site_id, len(results))
        return results

    async def aggregate(self, ctx: SearchContext) -> List[Listing]:
        if self.max_concurrency == 1:
            batches = [await self._call(a, ctx) for a in self.adapters]
        else:
            sem = asyncio.Semaphore(self.max_concurrency)
            batches = await asyncio.gather(*(self._call(a, ctx, sem) for a in self.adapters))

        seen = set()
        merged: List[Listing] = []
        for batch in batches:
            for listing in batch:
                if listing.id in seen:
                    continue
                seen.add(listing.id)
                merged.append(listing)
        return merged

    async def close(self):
        for adapter in self.adapters:
            await adapter.close()
