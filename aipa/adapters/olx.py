"""OLX Portugal through its public JSON offers API (no scraping)."""
import asyncio
import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional

from aipa import config
from aipa.adapters.base import SearchContext, SiteAdapter, price_in_context
from aipa.schemas import Listing
from aipa.utils.http import Http

log = logging.getLogger(__name__)

OLX_OFFERS_URL = "https://www.olx.pt/api/v1/offers"
PER_PAGE = 40

CATEGORY_ALL_REAL_ESTATE = 16
CATEGORY_LAND_SALE = 4795

OLX_REGIONS: Dict[str, int] = {
    "aveiro": 1,
    "beja": 2,
    "braga": 3,
    "braganca": 4,
    "castelo branco": 5,
    "coimbra": 6,
    "evora": 7,
    "faro": 8,
    "guarda": 9,
    "leiria": 10,
    "lisboa": 11,
    "lisbon": 11,
    "portalegre": 12,
    "porto": 13,
    "oporto": 13,
    "santarem": 14,
    "setubal": 15,
    "viana do castelo": 16,
    "vila real": 17,
    "viseu": 18,
    "acores": 19,
    "azores": 19,
    "madeira": 20,
}

AREA_KEYS = ("m", "area", "area_de_terreno_m2", "area_util")
BED_KEYS = ("rooms", "quartos", "t")
BATH_KEYS = ("bathrooms", "casas_banho")

_TAG_RE = re.compile(r"<[^>]*>")
_LAND_WORD_RE = re.compile(r"\b(land|terreno)s?\b")


def _fold(text: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFKD", text.lower()) if not unicodedata.combining(c))


def map_category(ctx: SearchContext) -> int:
    kind = (ctx.property_type or "").lower()
    if "land" in kind or "plot" in kind or _LAND_WORD_RE.search(ctx.query.lower()):
        return CATEGORY_LAND_SALE
    return CATEGORY_ALL_REAL_ESTATE


def find_region_id(ctx: SearchContext) -> Optional[int]:
    for term in (ctx.location_text, ctx.user_location.label):
        if not term:
            continue
        folded = _fold(term).strip()
        for name, region_id in OLX_REGIONS.items():
            if re.search(rf"\b{re.escape(name)}\b", folded) or (len(folded) > 3 and folded in name):
                return region_id
    return None


def _param(params: List[Dict[str, Any]], keys) -> Optional[Dict[str, Any]]:
    for key in keys:
        for p in params:
            if p.get("key") == key:
                return p
    return None


def _price(params: List[Dict[str, Any]]) -> float:
    p = _param(params, ("price",))
    value = ((p or {}).get("value") or {}).get("value")
    try:
        return float(value) if value else 0.0
    except (TypeError, ValueError):
        return 0.0


def _area(params: List[Dict[str, Any]]) -> Optional[float]:
    for key in AREA_KEYS:
        p = _param(params, (key,))
        raw = ((p or {}).get("value") or {}).get("key")
        if raw:
            cleaned = re.sub(r"[^\d.]", "", str(raw))
            try:
                return float(cleaned)
            except ValueError:
                continue
    return None


def _count(params: List[Dict[str, Any]], keys) -> Optional[int]:
    p = _param(params, keys)
    raw = ((p or {}).get("value") or {}).get("key")
    m = re.search(r"(\d+)", str(raw)) if raw else None
    return int(m.group(1)) if m else None


def photo_url(link: str, width: int = 800, height: int = 600) -> str:
    return link.replace("{width}", str(width)).replace("{height}", str(height))


def to_listing(offer: Dict[str, Any]) -> Listing:
    params = offer.get("params") or []
    location = offer.get("location") or {}
    city = (location.get("city") or {}).get("name") or ""
    region = (location.get("region") or {}).get("name") or ""
    coords = offer.get("map") or {}
    description = offer.get("description")
    return Listing(
        id=f"olx-{offer['id']}",
        source_site="OLX",
        source_url=offer.get("url") or "",
        title=offer.get("title") or "",
        price_eur=_price(params),
        currency="EUR",
        beds=_count(params, BED_KEYS),
        baths=_count(params, BATH_KEYS),
        area_sqm=_area(params),
        address=", ".join(x for x in (city, region) if x) or None,
        city=city or region or None,
        lat=coords.get("lat"),
        lng=coords.get("lon"),
        property_type=(offer.get("category") or {}).get("type"),
        description=_TAG_RE.sub(" ", description)[:500] if description else None,
        photos=[photo_url(p["link"]) for p in offer.get("photos") or [] if p.get("link")],
        last_seen_at=offer.get("last_refresh_time") or offer.get("created_time") or "",
    )


class OlxAdapter(SiteAdapter):
    site_id = "olx"
    site_name = "OLX"

    def __init__(
        self,
        http: Optional[Http] = None,
        *,
        max_listings: int = config.OLX_MAX_LISTINGS,
        max_pages: int = config.OLX_MAX_PAGES,
        page_delay: float = config.OLX_PAGE_DELAY,
    ):
        self._http = http
        self._owns_http = http is None
        self.max_listings = max_listings
        self.max_pages = max_pages
        self.page_delay = page_delay

    @property
    def http(self) -> Http:
        if self._http is None:
            self._http = Http()
        return self._http

    def _params(self, category_id: int, region_id: Optional[int], ctx: SearchContext, offset: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"category_id": category_id, "limit": PER_PAGE}
        if offset:
            params["offset"] = offset
        if region_id:
            params["region_id"] = region_id
        if ctx.price_range.min:
            params["filter_float_price:from"] = int(ctx.price_range.min)
        if ctx.price_range.max:
            params["filter_float_price:to"] = int(ctx.price_range.max)
        return params

    async def fetch_offers(self, ctx: SearchContext) -> List[Dict[str, Any]]:
        category_id = map_category(ctx)
        region_id = find_region_id(ctx)
        offers: List[Dict[str, Any]] = []
        offset = 0
        page = 0

        while len(offers) < self.max_listings and page < self.max_pages:
            log.info("[OLX] page %d (offset %d, category %s, region %s)", page + 1, offset, category_id, region_id)
            try:
                body = await self.http.get_json(OLX_OFFERS_URL, params=self._params(category_id, region_id, ctx, offset))
            except Exception as e:
                # keep whatever earlier pages returned
                log.error("[OLX] page %d failed: %s", page + 1, e)
                break

            data = (body or {}).get("data") or []
            if not data:
                break
            offers.extend(data)

            if not ((body.get("links") or {}).get("next")) or len(data) < PER_PAGE:
                break
            offset += PER_PAGE
            page += 1
            if self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

        log.info("[OLX] fetched %d offers", len(offers))
        return offers[: self.max_listings]

    async def _search(self, ctx: SearchContext) -> List[Listing]:
        offers = await self.fetch_offers(ctx)
        listings = [to_listing(o) for o in offers if o.get("id") is not None]
        if len(listings) < len(offers):
            log.warning("[OLX] skipped %d offers without an id", len(offers) - len(listings))
        # the API price filter is not always honoured
        return [x for x in listings if price_in_context(x.price_eur, ctx)]

    async def close(self):
        if self._owns_http and self._http is not None:
            await self._http.close()
