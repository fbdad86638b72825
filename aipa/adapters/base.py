import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from aipa.schemas import Listing, PriceRange, UserLocation

log = logging.getLogger(__name__)


class SearchContext(BaseModel):
    query: str
    price_range: PriceRange
    user_location: UserLocation = Field(default_factory=UserLocation)
    property_type: Optional[str] = None
    location_text: Optional[str] = None


class SiteAdapter:
    """A listing source. ``search_listings`` never raises: failures log and yield ``[]``."""

    site_id: str = ""
    site_name: str = ""

    async def search_listings(self, ctx: SearchContext) -> List[Listing]:
        try:
            return await self._search(ctx)
        except Exception as e:
            log.error("[%s] search failed: %s", self.site_name or self.site_id, e)
            return []

    async def _search(self, ctx: SearchContext) -> List[Listing]:
        raise NotImplementedError

    async def close(self):
        pass


def price_in_context(price: float, ctx: SearchContext) -> bool:
    # 0 means "no bound" upstream, matching the source APIs
    if ctx.price_range.min and price < ctx.price_range.min:
        return False
    if ctx.price_range.max and price > ctx.price_range.max:
        return False
    return True
