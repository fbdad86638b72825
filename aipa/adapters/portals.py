"""Portuguese listing portals discovered through DuckDuckGo and read via their JSON-LD."""
import asyncio
import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from aipa import config
from aipa.adapters.base import SearchContext, SiteAdapter, price_in_context
from aipa.adapters.common import extract_from_jsonld
from aipa.schemas import Listing
from aipa.utils.currency import to_eur
from aipa.utils.http import Http
from aipa.web_search import discover_listing_urls, portal_for_url

log = logging.getLogger(__name__)

LISTING_ID_RE = re.compile(r"(\d{5,})")


def parse_listing_id(url: str) -> str:
    m = LISTING_ID_RE.search(url)
    if m:
        return m.group(1)
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


def transform(url: str, html: str, site: Optional[str] = None) -> Listing:
    """Map a portal detail page to a ``Listing``; raises ``ValueError`` without usable JSON-LD."""
    site = site or portal_for_url(url) or "web"
    data = extract_from_jsonld(html)
    if not data.get("raw") or not data.get("title"):
        raise ValueError(f"no listing JSON-LD at {url}")

    price = data.get("price") or 0.0
    currency = (data.get("currency") or "EUR").upper()
    if price and currency != "EUR":
        price = to_eur(price, currency)

    beds = data.get("bedrooms")
    baths = data.get("bathrooms")
    description = data.get("description")
    return Listing(
        id=f"{site}-{parse_listing_id(url)}",
        source_site=site,
        source_url=url,
        title=str(data["title"]),
        price_eur=price,
        currency="EUR",
        beds=int(beds) if beds is not None else None,
        baths=int(baths) if baths is not None else None,
        area_sqm=data.get("area"),
        address=data.get("address"),
        city=data.get("city"),
        lat=data.get("latitude"),
        lng=data.get("longitude"),
        description=str(description)[:800] if description else None,
        photos=data.get("images", []),
        last_seen_at=datetime.now(timezone.utc).isoformat(),
    )


async def scrape_listing(url: str, http: Optional[Http] = None) -> Listing:
    owned = http is None
    http = http or Http()
    try:
        html = await http.get_text(url)
    finally:
        if owned:
            await http.close()
    return transform(url, html)


class PortalSearchAdapter(SiteAdapter):
    site_id = "portals"
    site_name = "Portal search"

    def __init__(self, http: Optional[Http] = None, *, max_results: int = config.MAX_RESULTS, discover=discover_listing_urls):
        self._http = http
        self._owns_http = http is None
        self.max_results = max_results
        self._discover = discover

    @property
    def http(self) -> Http:
        if self._http is None:
            self._http = Http()
        return self._http

    async def _fetch(self, url: str) -> Optional[Listing]:
        try:
            html = await self.http.get_text(url)
            return transform(url, html)
        except Exception as e:
            log.warning("[Portals] %s skipped: %s", url, e)
            return None

    async def _search(self, ctx: SearchContext) -> List[Listing]:
        # DDGS is synchronous
        found = await asyncio.to_thread(
            self._discover, ctx.property_type, ctx.location_text, None, self.max_results
        )
        urls = [u for urls in found.values() for u in urls]
        log.info("[Portals] %d candidate pages", len(urls))

        listings = []
        for url in urls:
            listing = await self._fetch(url)
            if listing is not None and price_in_context(listing.price_eur, ctx):
                listings.append(listing)
        return listings

    async def close(self):
        if self._owns_http and self._http is not None:
            await self._http.close()
