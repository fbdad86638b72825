"""Top-level search: intent, price windows, sources, filters, ranking, presentation."""
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from aipa import config
from aipa.adapters.base import SearchContext
from aipa.aggregator import ListingAggregator
from aipa.ai import prompts
from aipa.ai.json_extract import extract_json_object
from aipa.errors import AIUnavailableError
from aipa.query_parser import convert_intent_to_eur, parse_user_query
from aipa.relevance import RelevanceEngine
from aipa.schemas import (
    BlockedSite,
    Listing,
    ListingCard,
    MatchRules,
    PickResponse,
    PriceRange,
    RankedListing,
    SearchRequest,
    SearchResponse,
    StoredSearch,
    UserLocation,
)
from aipa.search_store import SearchStore
from aipa.utils.currency import format_currency
from aipa.utils.geo import GeoPoint, distance_km, within_radius
from aipa.utils.price_range import build_near_miss_price_range, build_strict_price_range, in_range

log = logging.getLogger(__name__)

RENT_TEXT = re.compile(r"arrendar|alugar|aluguer|\brent|arrendamento|por mês|per month|/mês|/month|mensal|monthly")
SALE_TEXT = re.compile(r"venda|vender|for sale|compra|comprar|\bsale\b")

CARD_ROOM = re.compile(r"quarto(?!\s+de\s+banho)|\broom\b")
CARD_ROOM_VETO = re.compile(r"apartamento|moradia|\bt[1-4]\b")
CARD_APARTMENT = re.compile(r"apartamento|apartment|\bflat\b|\bt[0-4]\b")
CARD_HOUSE = re.compile(r"moradia|house|villa|vivenda|quinta")
CARD_LAND = re.compile(r"terreno|\bland\b|\blote\b|\bplot\b|rústico")

PICK_COUNT_RE = re.compile(r"\b(\d+|one|two|three|four|five|a few|some)\b(?!\s*(?:m2|m²|sqm))", re.I)
PICK_AREA_RE = re.compile(r"(\d+)\s*(?:m2|m²|sqm)", re.I)
_COUNT_WORDS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "a few": 3, "some": 3}


def default_match_rules() -> MatchRules:
    return MatchRules(
        exact_tolerance_percent=config.EXACT_TOLERANCE_PERCENT,
        exact_tolerance_absolute_eur=config.EXACT_TOLERANCE_ABSOLUTE_EUR,
        near_miss_tolerance_percent=config.NEAR_MISS_TOLERANCE_PERCENT,
        near_miss_tolerance_absolute_eur=config.NEAR_MISS_TOLERANCE_ABSOLUTE_EUR,
        strict_radius_km=config.STRICT_RADIUS_KM,
        near_miss_radius_km=config.NEAR_MISS_RADIUS_KM,
    )


def _combined_text(listing: Listing) -> str:
    return f"{listing.title} {listing.description or ''}".lower()


def detect_listing_type(listing: Listing) -> Optional[str]:
    """'sale' | 'rent' | None, from the adapter's value or from wording and price."""
    if listing.listing_type:
        return listing.listing_type
    text = _combined_text(listing)
    rent_words = bool(RENT_TEXT.search(text))
    sale_words = bool(SALE_TEXT.search(text))
    low_price = 0 < listing.price_eur < 5000
    high_price = listing.price_eur >= 30000
    if rent_words or (low_price and not sale_words and not high_price):
        return "rent"
    if sale_words or high_price:
        return "sale"
    return None


def detect_property_type(listing: Listing) -> Optional[str]:
    # adapters often default to "land" from the category; re-check the wording
    if listing.property_type and listing.property_type != "land":
        return listing.property_type
    text = _combined_text(listing)
    is_room = bool(CARD_ROOM.search(text)) and not CARD_ROOM_VETO.search(listing.title.lower())
    is_apartment = not is_room and bool(CARD_APARTMENT.search(text))
    is_house = not is_apartment and bool(CARD_HOUSE.search(text))
    if is_room:
        return "room"
    if is_apartment:
        return "apartment"
    if is_house:
        return "house"
    if CARD_LAND.search(text):
        return "land"
    return listing.property_type


def filter_listings(
    listings: Sequence[Listing], price_range: PriceRange, radius_km: float, origin: GeoPoint
) -> List[Tuple[Listing, Optional[float]]]:
    """Keep listings inside the price window and radius; listings without coordinates pass the radius."""
    kept = []
    for listing in listings:
        if not in_range(listing.price_eur, price_range):
            continue
        distance = None
        if listing.lat is not None and listing.lng is not None:
            point = GeoPoint(listing.lat, listing.lng)
            if not within_radius(origin, point, radius_km):
                continue
            distance = distance_km(origin, point)
        kept.append((listing, distance))
    return kept


def filter_by_listing_intent(pairs: List[Tuple[Listing, Optional[float]]], intent: Optional[str]) -> List[Tuple[Listing, Optional[float]]]:
    if not intent:
        return pairs
    kept = [(l, d) for l, d in pairs if detect_listing_type(l) in (intent, None)]
    log.info("[Search] filtered by %s: %d -> %d listings", intent, len(pairs), len(kept))
    return kept


def to_card(listing: Listing, distance: Optional[float] = None, score: float = 0, reasoning: Optional[str] = None) -> ListingCard:
    listing_type = detect_listing_type(listing)
    return ListingCard(
        id=listing.id,
        title=listing.title,
        price_eur=listing.price_eur,
        display_price=format_currency(listing.price_eur, "EUR") + ("/mo" if listing_type == "rent" else ""),
        location_label=listing.location_label,
        beds=listing.beds,
        baths=listing.baths,
        area_sqm=listing.area_sqm,
        image=listing.photos[0] if listing.photos else None,
        source_site=listing.source_site,
        source_url=listing.source_url,
        distance_km=round(distance, 1) if distance is not None else None,
        match_score=score,
        ai_reasoning=reasoning,
        listing_type=listing_type,
        property_type=detect_property_type(listing),
    )


def compose_note(match_type: str, shown: int, considered: int, listing_intent: Optional[str]) -> str:
    label = {"rent": "for rent", "sale": "for sale"}.get(listing_intent or "", "")
    dropped = considered - shown
    if match_type == "exact":
        note = f"Found {shown} {label} listings (filtered from {considered})." if dropped > 0 else f"Showing {shown} {label} listings."
    elif dropped > 0:
        note = f"AI analyzed {considered} near-miss results, showing {shown} most relevant {label}."
    else:
        note = f"No exact matches. Showing {shown} closest {label} matches."
    return re.sub(r"\s+", " ", note).replace(" .", ".")


def requested_pick_count(query: str, default: int) -> int:
    m = PICK_COUNT_RE.search(query)
    if not m:
        return default
    word = m.group(1).lower()
    return _COUNT_WORDS.get(word) or int(word)


def build_pick_prompt(query: str, listings: Sequence[Listing], distances: Sequence[Optional[float]], count: int, detailed: bool) -> str:
    data = [
        {
            "index": i,
            "id": l.id,
            "title": l.title,
            "price": l.price_eur,
            "location": l.location_label,
            "distanceKm": round(d, 1) if d is not None else None,
            "beds": l.beds,
            "baths": l.baths,
            "area": l.area_sqm,
            "propertyType": l.property_type,
            "description": (l.description or "")[:300],
        }
        for i, (l, d) in enumerate(zip(listings[:30], distances))
    ]
    depth = (
        "For each selected listing give a detailed analysis (4-6 sentences): why it matches, "
        "price and value (€/m² where it applies), location, size, features and concerns."
        if detailed
        else "For each selected listing give a brief analysis (2-3 sentences)."
    )
    return f"""You are helping a user select properties from their search results.

User request: "{query}"

Available listings:
{json.dumps(data, indent=2, ensure_ascii=False)}

Select the {count} best listings for the request.
- "closest" or "nearest": lower distanceKm first
- "cheapest": lower price first
- "m2", "sqm", "square meters": use the area field; "around 1000 m2" means area close to 1000
- "best": overall balance of price, size and location

{depth}

Respond with ONLY a JSON object:
{{"selectedIndices": [0, 3], "listingAnalyses": {{"0": "...", "3": "..."}}, "explanation": "2-3 sentences"}}"""


def sort_for_pick(query: str, listings: Sequence[Listing], distances: Sequence[Optional[float]]) -> List[Listing]:
    """Deterministic ordering by target area, distance or price, whichever the request mentions."""
    lower = query.lower()
    pairs = list(zip(listings, distances))
    if any(w in lower for w in ("m2", "m²", "sqm", "square")):
        m = PICK_AREA_RE.search(query)
        if m:
            target = int(m.group(1))
            pairs.sort(key=lambda p: abs((p[0].area_sqm or 0) - target))
        else:
            pairs.sort(key=lambda p: p[0].area_sqm or 0)
    elif any(w in lower for w in ("closest", "nearest", "center")):
        pairs.sort(key=lambda p: p[1] if p[1] is not None else 999)
    else:
        pairs.sort(key=lambda p: p[0].price_eur or 0)
    return [l for l, _ in pairs]


class SearchOrchestrator:
    """Runs a natural-language search end to end.

    The strict price window is tried first; the wider near-miss window is
    only queried when the strict pass leaves nothing after filtering.
    """

    def __init__(
        self,
        aggregator: ListingAggregator,
        relevance: Optional[RelevanceEngine] = None,
        *,
        ai=None,
        store: Optional[SearchStore] = None,
        diagnostics=None,
        rag=None,
        rules: Optional[MatchRules] = None,
        index_results: bool = config.INDEX_SEARCH_RESULTS,
    ):
        self.aggregator = aggregator
        self.ai = ai
        self.relevance = relevance or RelevanceEngine(ai)
        self.store = store or SearchStore()
        self.diagnostics = diagnostics
        self.rag = rag
        self.rules = rules or default_match_rules()
        self.index_results = index_results

    async def _blocked_sites(self) -> List[BlockedSite]:
        if self.diagnostics is None:
            return []
        return await self.diagnostics.blocked_sites()

    async def _collect(self, request: SearchRequest, parsed, price_range: PriceRange, radius_km: float):
        ctx = SearchContext(
            query=request.query,
            price_range=price_range,
            user_location=request.user_location,
            property_type=parsed.property_type,
            location_text=parsed.location_text,
        )
        listings = await self.aggregator.aggregate(ctx)
        origin = GeoPoint(request.user_location.lat, request.user_location.lng)
        pairs = filter_listings(listings, price_range, radius_km, origin)
        return filter_by_listing_intent(pairs, parsed.listing_intent)

    async def run_search(self, request: SearchRequest) -> SearchResponse:
        parsed = parse_user_query(request.query)
        currency = parsed.currency or request.user_location.currency
        intent = convert_intent_to_eur(parsed.price_intent, currency)

        strict = build_strict_price_range(intent, "EUR", self.rules)
        near_miss = build_near_miss_price_range(intent, "EUR", self.rules)
        blocked = await self._blocked_sites()
        search_id = str(uuid.uuid4())

        match_type = "exact"
        applied, radius = strict, self.rules.strict_radius_km
        try:
            pairs = await self._collect(request, parsed, strict, radius)
            if not pairs:
                log.info("[Search] no strict matches, widening to near-miss range")
                match_type = "near-miss"
                applied, radius = near_miss, self.rules.near_miss_radius_km
                pairs = await self._collect(request, parsed, near_miss, radius)

            distances = {l.id: d for l, d in pairs}
            ranked = await self.relevance.get_relevant_listings(request.query, [l for l, _ in pairs])
        except Exception as e:
            log.exception("[Search] search %s failed: %s", search_id, e)
            return SearchResponse(
                search_id=search_id,
                match_type=match_type,
                note="Search failed while contacting listing sources. Please try again.",
                applied_price_range=applied,
                applied_radius_km=radius,
                blocked_sites=blocked,
            )

        cards = [
            to_card(r.listing, distances.get(r.listing.id), r.relevance.relevance_score, r.relevance.reasoning)
            for r in ranked
        ]
        self.store.save(
            StoredSearch(
                id=search_id,
                created_at=datetime.now(timezone.utc).isoformat(),
                query=request.query,
                user_location=request.user_location,
                listings=[r.listing for r in ranked],
            )
        )
        await self._index(ranked)

        return SearchResponse(
            search_id=search_id,
            match_type=match_type,
            note=compose_note(match_type, len(ranked), len(pairs), parsed.listing_intent),
            summary=await self._summary(request.query, match_type, ranked, applied),
            applied_price_range=applied,
            applied_radius_km=radius,
            listings=cards,
            blocked_sites=blocked,
        )

    async def _index(self, ranked: Sequence[RankedListing]) -> None:
        if not (self.index_results and self.rag is not None and ranked):
            return
        try:
            await self.rag.index_listings([r.listing for r in ranked])
        except OSError as e:
            log.error("[Search] indexing results failed: %s", e)

    async def _summary(self, query: str, match_type: str, ranked: Sequence[RankedListing], applied: PriceRange) -> Optional[str]:
        if self.ai is None:
            return None
        locations = list(dict.fromkeys(r.listing.city for r in ranked if r.listing.city))[:5]
        return await self.ai.generate_results_response(
            query, match_type, len(ranked), {"min": applied.min, "max": applied.max}, locations
        )

    async def pick_best_listings(
        self,
        query: str,
        listings: Sequence[Listing],
        count: int = 2,
        user_location: Optional[UserLocation] = None,
    ) -> PickResponse:
        if not listings:
            return PickResponse(explanation="No listings available to pick from.")

        count = max(1, min(requested_pick_count(query, count), len(listings)))
        distances = [
            distance_km(GeoPoint(user_location.lat, user_location.lng), GeoPoint(l.lat, l.lng))
            if user_location is not None and l.lat is not None and l.lng is not None
            else None
            for l in listings
        ]

        if self.ai is not None and (await self.ai.health()).available:
            picked = await self._pick_with_ai(query, listings, distances, count)
            if picked is not None:
                return picked

        log.info("[Search] picking %d listings without AI", count)
        return PickResponse(
            listings=sort_for_pick(query, listings, distances)[:count],
            explanation=f"Here are the {count} listings that best match your criteria.",
        )

    async def _pick_with_ai(
        self, query: str, listings: Sequence[Listing], distances: Sequence[Optional[float]], count: int
    ) -> Optional[PickResponse]:
        prompt = build_pick_prompt(query, listings, distances, count, detailed=count <= self.relevance.detail_threshold)
        try:
            text = await self.ai.complete(prompt, prompts.PICK_SYSTEM_PROMPT)
        except AIUnavailableError as e:
            log.warning("[Search] AI pick failed: %s", e)
            return None

        data = extract_json_object(text)
        if not data:
            return None
        indices = [i for i in data.get("selectedIndices") or [] if isinstance(i, int) and 0 <= i < len(listings)]
        if not indices:
            return None
        analyses = data.get("listingAnalyses") if isinstance(data.get("listingAnalyses"), dict) else {}

        chosen: List[Listing] = []
        reasoning: Dict[str, str] = {}
        for i in list(dict.fromkeys(indices))[:count]:
            listing = listings[i]
            chosen.append(listing)
            analysis = analyses.get(str(i))
            if isinstance(analysis, str) and len(analysis) > 50:
                reasoning[listing.id] = analysis
        return PickResponse(
            listings=chosen,
            reasoning=reasoning,
            explanation=str(data.get("explanation") or f"Here are the {len(chosen)} best options based on your criteria."),
        )
