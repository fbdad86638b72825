"""Relevance ranking of candidate listings against the user's request.

Two modes share one result shape: a language-model mode that reads titles and
descriptions in batches, and a deterministic keyword heuristic used whenever
the model is skipped, unavailable, too slow, or answers with something that
is not a JSON array.
"""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from aipa import config
from aipa.ai.json_extract import extract_json_array
from aipa.ai.prompts import LISTING_ANALYSIS_SYSTEM_PROMPT
from aipa.errors import AIUnavailableError
from aipa.schemas import Listing, RankedListing, RelevanceResult

log = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")

# (pattern, key, label): searched in both the query and the listing text
VISUAL_FEATURES: List[Tuple[re.Pattern, str, str]] = [
    (re.compile(r"\b(sea|mar|ocean|oceano|vista\s*mar|sea\s*view|ocean\s*view|beach|praia)\b", re.I), "sea", "sea/ocean view"),
    (re.compile(r"\b(pool|piscina|swimming)\b", re.I), "pool", "swimming pool"),
    (re.compile(r"\b(forest|floresta|trees?|árvores?|bosque|arborizado)\b", re.I), "forest", "forest/trees"),
    (re.compile(r"\b(mountain|montanha|serra|vista\s*montanha)\b", re.I), "mountain", "mountain view"),
    (re.compile(r"\b(garden|jardim|quintal)\b", re.I), "garden", "garden"),
    (re.compile(r"\b(river|rio|ribeira|riverside)\b", re.I), "river", "riverside"),
    (re.compile(r"\b(ruin|ruína|abandoned|para\s*reconstruir|para\s*recuperar)\b", re.I), "ruins", "ruins/renovation needed"),
    (re.compile(r"\b(modern|moderno|contemporary|contemporâneo)\b", re.I), "modern", "modern style"),
    (re.compile(r"\b(traditional|tradicional|típico|rústico|rustic)\b", re.I), "traditional", "traditional/rustic"),
    (re.compile(r"\b(vineyard|vinha|vinícola)\b", re.I), "vineyard", "vineyard"),
    (re.compile(r"\b(terrace|terraço|varanda|balcony)\b", re.I), "terrace", "terrace/balcony"),
    (re.compile(r"\b(garage|garagem|parking|estacionamento)\b", re.I), "parking", "parking/garage"),
    (re.compile(r"\b(rural|campo|countryside|isolado)\b", re.I), "rural", "rural location"),
]
_FEATURE_LABELS = {key: label for _, key, label in VISUAL_FEATURES}

WANTS_APARTMENT = re.compile(r"apartment|apartamento|\bapt\b|\bflat\b")
WANTS_HOUSE = re.compile(r"house|\bcasa\b|moradia|villa|vivenda|quinta")
WANTS_LAND = re.compile(r"\bland\b|terreno|\bplot\b|\blote\b|terrain")
WANTS_BUILDING = re.compile(r"construct|build|construção|construir|building plot|lote para|urbano")
WANTS_FARMING = re.compile(r"farm|agric|cultiv|rústico|agrícola")
WANTS_ROOM = re.compile(r"\broom\b|\bquarto\b")
WANTS_SALE = re.compile(r"sale|\bbuy\b|compra|venda|purchase|\d{5,}")
WANTS_RENT = re.compile(r"\brent|arrendar|alugar|aluguer")
QUERY_LOCATION = re.compile(r"(?:in|near|around)\s+(\w+)")

IS_ROOM = re.compile(r"quarto(?!\s+de\s+banho)|\broom\b|single room")
IS_APARTMENT = re.compile(r"apartamento|apartment|\bflat\b|\bt[0-4]\b")
IS_HOUSE = re.compile(r"moradia|house|villa|vivenda|quinta")
IS_LAND = re.compile(r"terreno|\bland\b|\blote\b|\bplot\b|rústico")
IS_COMMERCIAL = re.compile(r"comercial|\bloja\b|armazém|pavilh|escritório|office")
IS_MOBILE_HOME = re.compile(r"mobil\s*home|caravana|rulote")
IS_URBAN_LAND = re.compile(r"urbano|urbanizável|construção|lote de|para construir|viabilidade|projeto aprovado|alvará")
IS_RURAL_LAND = re.compile(r"rústico|rústica|agrícola|agricultural|rural")
IS_RENT_TEXT = re.compile(r"arrendar|alugar|aluguer|\brent|\bmês\b|month|mensal")
IS_SALE_TEXT = re.compile(r"venda|vender|\bsale\b|compra")


def requested_features(query: str) -> List[str]:
    return [key for pattern, key, _ in VISUAL_FEATURES if pattern.search(query)]


def _clean(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", _TAG_RE.sub(" ", text)).strip()


def build_analysis_prompt(query: str, listings: Sequence[Listing], detailed: bool) -> str:
    desc_limit = 800 if detailed else 500
    blocks = []
    for idx, l in enumerate(listings, start=1):
        desc = _clean(l.description) or "No description provided"
        if len(desc) > desc_limit:
            desc = desc[:desc_limit] + "..."
        area = f"{l.area_sqm:,.0f} m²" if l.area_sqm else "Not specified"
        photos = f"Has {len(l.photos)} photo(s)" if l.photos else "No photos available"
        blocks.append(
            f"---\nLISTING {idx} (ID: {l.id})\n"
            f"Location: {l.location_label}\n"
            f'Title: "{l.title}"\n'
            f"Price: €{l.price_eur:,.0f}\n"
            f"Area: {area}\n"
            f"Type: {l.property_type or 'Not specified'}\n"
            f'Description: "{desc}"\n'
            f"{photos}"
        )
    listing_text = "\n".join(blocks)

    features = [_FEATURE_LABELS[k] for k in requested_features(query)]
    feature_note = ""
    if features:
        feature_note = (
            f"\nTHE USER IS LOOKING FOR VISUAL FEATURES: {', '.join(features)}\n"
            "Check each description for them. When a feature is not mentioned, say "
            '"feature not confirmed in text - may need photo analysis".\n'
        )

    if detailed:
        return (
            f'USER SEARCH QUERY: "{query}"\n{feature_note}\n'
            "Read each listing's title and description carefully, work out what is actually offered, "
            "and compare it with the request. Quote words from the description in your reasoning.\n\n"
            f"LISTINGS TO ANALYZE:\n{listing_text}\n\n"
            "Return a JSON array with one entry per listing:\n"
            '[{"id": "listing-id", "isRelevant": true, "relevanceScore": 0-100, '
            '"reasoning": "4-6 sentences citing specific details: type, buildability, price per m², '
            'location and any requested features."}]'
        )
    return (
        f'USER SEARCH QUERY: "{query}"\n{feature_note}\n'
        f"Analyze these {len(listings)} Portuguese real estate listings. Read the descriptions, not just the titles. "
        'For land always state whether it is "urbano" (buildable) or "rústico" (not buildable).\n\n'
        f"{listing_text}\n\n"
        "Return a JSON array. Each reasoning must be 3-4 sentences covering the property type, "
        "whether it matches the request, notable features or concerns, and whether requested visual "
        "features are mentioned:\n"
        '[{"id": "listing-id", "isRelevant": true, "relevanceScore": 0-100, "reasoning": "..."}]'
    )


def _score(raw: Dict[str, Any]) -> float:
    for key in ("relevanceScore", "relevance_score", "score"):
        value = raw.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return max(0.0, min(100.0, float(value)))
        if isinstance(value, str):
            m = re.search(r"-?\d+(?:\.\d+)?", value)
            if m:
                return max(0.0, min(100.0, float(m.group(0))))
    return 50.0


def _relevant(raw: Dict[str, Any]) -> bool:
    for key in ("isRelevant", "is_relevant", "relevant"):
        if key in raw:
            value = raw[key]
            if isinstance(value, str):
                return value.strip().lower() in ("true", "yes", "1")
            return bool(value)
    return True


def normalize_model_results(raw_results: Sequence[Any]) -> List[RelevanceResult]:
    out = []
    for raw in raw_results:
        if not isinstance(raw, dict):
            continue
        rid = str(raw.get("id") or "").strip()
        if not rid:
            continue
        reasoning = raw.get("reasoning") or raw.get("reason") or raw.get("explanation") or "Analyzed by AI"
        out.append(RelevanceResult(id=rid, is_relevant=_relevant(raw), relevance_score=_score(raw), reasoning=str(reasoning)))
    return out


def _loose_match(listing: Listing, result: RelevanceResult) -> bool:
    title = listing.title.lower()[:20]
    return result.id in listing.id or listing.id in result.id or bool(title and title in result.reasoning.lower())


def merge_model_results(listings: Sequence[Listing], results: Sequence[RelevanceResult]) -> List[RelevanceResult]:
    """One result per listing, in listing order. Unaddressed listings default to relevant (60).

    Ids are matched exactly first. A loose match (partial id or title in the
    reasoning) is only used when it pairs one unclaimed result with one
    listing, and it can never reject a listing.
    """
    by_id = {r.id: r for r in results}
    unmatched = [l for l in listings if l.id not in by_id]
    unclaimed = [r for r in results if r.id not in {l.id for l in listings}]
    merged = []
    for l in listings:
        hit = by_id.get(l.id)
        if hit is None:
            candidates = [r for r in unclaimed if _loose_match(l, r)]
            if len(candidates) == 1:
                r = candidates[0]
                unique = sum(1 for other in unmatched if _loose_match(other, r)) == 1
                if unique and r.is_relevant:
                    hit = r.model_copy(update={"id": l.id})
        if hit is None:
            hit = RelevanceResult(id=l.id, is_relevant=True, relevance_score=60, reasoning="Included based on search criteria")
        merged.append(hit)
    return merged


def analyze_locally(query: str, listings: Sequence[Listing], detailed: bool = False) -> List[RelevanceResult]:
    """Keyword heuristic. Pure: same input, same output."""
    q = query.lower()
    wants_apartment = bool(WANTS_APARTMENT.search(q)) and not re.search(r"house|moradia|villa", q)
    wants_house = bool(WANTS_HOUSE.search(q))
    wants_land = bool(WANTS_LAND.search(q))
    wants_building_land = wants_land and bool(WANTS_BUILDING.search(q))
    wants_farm_land = wants_land and bool(WANTS_FARMING.search(q))
    wants_room = bool(WANTS_ROOM.search(q))
    wants_sale = bool(WANTS_SALE.search(q))
    wants_rent = bool(WANTS_RENT.search(q))
    m = QUERY_LOCATION.search(q)
    location_word = m.group(1) if m else None
    wanted_features = requested_features(q)

    results = []
    for l in listings:
        title = l.title.lower()
        text = f"{title} {(l.description or '').lower()}"
        city = (l.city or "").lower()
        place = l.city or "the area"

        score = 50.0
        reasons: List[str] = []
        relevant = True

        is_room = bool(IS_ROOM.search(text)) and not re.search(r"apartamento|moradia|\bt[1-4]\b", title)
        is_apartment = bool(IS_APARTMENT.search(text)) and not is_room and not re.search(r"moradia|house|villa", title)
        is_house = bool(IS_HOUSE.search(text)) and not is_apartment
        is_land = bool(IS_LAND.search(text))
        is_commercial = bool(IS_COMMERCIAL.search(text))
        is_mobile_home = bool(IS_MOBILE_HOME.search(text))
        is_urban_land = is_land and bool(IS_URBAN_LAND.search(text))
        is_rural_land = is_land and bool(IS_RURAL_LAND.search(text))

        if is_room:
            kind = "Room"
        elif is_apartment:
            kind = "Apartment"
        elif is_house:
            kind = "House/Villa"
        elif is_urban_land and not is_rural_land:
            kind = "Urban land (buildable)"
        elif is_rural_land:
            kind = "Rural land (not buildable)"
        elif is_land:
            kind = "Land"
        elif is_commercial:
            kind = "Commercial"
        elif is_mobile_home:
            kind = "Mobile home"
        else:
            kind = "Property"

        if wants_apartment:
            if is_apartment:
                score += 35
                reasons.append(f"{kind} in {place}")
            elif is_room:
                score -= 25
                reasons.append("This is a room rental, not a full apartment")
                relevant = False
            elif is_house:
                score += 10
                reasons.append(f"{kind} - you searched for apartments")
            elif is_commercial:
                score -= 30
                reasons.append("Commercial property, not residential")
                relevant = False
            elif is_mobile_home:
                score -= 10
                reasons.append("Mobile home listing")
        elif wants_house:
            if is_house:
                score += 35
                reasons.append(f"{kind} matches your search")
            elif is_apartment:
                score += 5
                reasons.append(f"{kind} - you searched for houses")
        elif wants_land and is_land:
            if wants_building_land:
                if is_urban_land and not is_rural_land:
                    score += 40
                    reasons.append("Urban land - suitable for construction")
                elif is_rural_land:
                    score -= 40
                    reasons.append("Rural (rústico) land - building is not allowed")
                    relevant = False
                else:
                    per_sqm = l.price_eur / l.area_sqm if l.area_sqm else 0.0
                    if per_sqm > 20:
                        score += 20
                        reasons.append(f"Land at €{per_sqm:,.0f}/m² suggests buildable")
                    elif 0 < per_sqm < 10:
                        score -= 20
                        reasons.append(f"Low price (€{per_sqm:,.0f}/m²) suggests rural/unbuildable")
                        relevant = False
                    else:
                        reasons.append("Land - verify if urbano (buildable) or rústico (not buildable)")
            elif wants_farm_land:
                if is_rural_land:
                    score += 40
                    reasons.append("Rural/agricultural land - suitable for farming")
                elif is_urban_land:
                    score -= 10
                    reasons.append("Urban land - meant for construction, not farming")
                else:
                    score += 20
                    reasons.append("Land plot - check if suitable for agriculture")
            else:
                score += 30
                if is_urban_land:
                    reasons.append("Urban land (construction allowed)")
                elif is_rural_land:
                    reasons.append("Rural land (agricultural use only)")
                else:
                    reasons.append("Land plot - verify land classification")
        elif wants_room and is_room:
            score += 25
            reasons.append("Room rental matches your search")
        elif not (wants_apartment or wants_house or wants_land or wants_room):
            if is_apartment or is_house:
                score += 20
                reasons.append(f"{kind} in {place}")

        if location_word and location_word in city:
            score += 15
            if not reasons:
                reasons.append(f"Located in {l.city}")

        for_rent = bool(IS_RENT_TEXT.search(text)) or 100 < l.price_eur < 3000
        for_sale = bool(IS_SALE_TEXT.search(text)) or l.price_eur > 30000
        if wants_sale and for_rent and not for_sale:
            score -= 20
            reasons.append(f"Rental listing (€{l.price_eur:,.0f}/month)")
            relevant = relevant and l.price_eur > 10000
        elif wants_rent and for_sale and not for_rent:
            score -= 15
            reasons.append(f"For sale at €{l.price_eur:,.0f}")
        elif for_sale and l.price_eur > 0:
            reasons.append(f"€{l.price_eur:,.0f}")

        listing_features = [key for pattern, key, _ in VISUAL_FEATURES if pattern.search(text)]
        if wanted_features:
            matched = [f for f in wanted_features if f in listing_features]
            if matched:
                score += len(matched) / len(wanted_features) * 25
                reasons.append("Has " + ", ".join(_FEATURE_LABELS[f] for f in matched))
            else:
                score -= 10

        score = max(10.0, min(95.0, score))
        results.append(
            RelevanceResult(
                id=l.id,
                is_relevant=relevant,
                relevance_score=score,
                reasoning=_local_reasoning(l, kind, is_land, is_urban_land, is_rural_land, listing_features, wanted_features, score, reasons, detailed),
            )
        )
    return results


def _local_reasoning(l: Listing, kind, is_land, is_urban_land, is_rural_land, listing_features, wanted_features, score, reasons, detailed) -> str:
    parts = [f"This is a {kind.lower()} located in {l.city or 'Portugal'}."]

    if is_land:
        if is_urban_land and not is_rural_land:
            parts.append("It is classified as urban land (terreno urbano), so construction is permitted.")
        elif is_rural_land:
            parts.append("It is rural (rústico) land: construction is not permitted, agriculture only.")
        else:
            parts.append("Land classification is unclear from the listing - check whether it is urbano or rústico.")

    if l.price_eur > 0:
        per_sqm = round(l.price_eur / l.area_sqm) if l.area_sqm else 0
        if per_sqm > 0:
            if is_land:
                band = "very affordable (likely rural)" if per_sqm < 20 else "affordable" if per_sqm < 50 else "moderate" if per_sqm < 150 else "premium (likely urban/coastal)"
            else:
                band = "quite affordable" if per_sqm < 1500 else "reasonably priced" if per_sqm < 3000 else "mid-range" if per_sqm < 5000 else "premium pricing"
            parts.append(f"Priced at €{l.price_eur:,.0f} (€{per_sqm}/m²), {band} for the area.")
        else:
            parts.append(f"Listed at €{l.price_eur:,.0f}.")

    if detailed and l.area_sqm:
        if is_land:
            size = "small plot" if l.area_sqm < 500 else "medium plot" if l.area_sqm < 2000 else "large plot" if l.area_sqm < 10000 else "very large plot"
        else:
            size = "compact" if l.area_sqm < 50 else "medium-sized" if l.area_sqm < 100 else "spacious" if l.area_sqm < 200 else "large"
        parts.append(f"Size: {l.area_sqm:,.0f} m² ({size}).")

    if listing_features:
        parts.append("Features mentioned: " + ", ".join(_FEATURE_LABELS[f] for f in listing_features) + ".")
    elif wanted_features:
        parts.append(f"Requested features ({', '.join(wanted_features)}) are not confirmed in the listing text.")

    if detailed and reasons:
        parts.append(reasons[0] + ".")

    if score >= 75:
        parts.append("Strong match for your search criteria.")
    elif score >= 50:
        parts.append("Partial match - review the details to confirm suitability.")
    else:
        parts.append("May not fully match your requirements.")

    return " ".join(parts[:6] if detailed else parts[:4])


class RelevanceEngine:
    def __init__(
        self,
        orchestrator=None,
        *,
        enabled: bool = config.AI_ANALYSIS_ENABLED,
        batch_size: int = config.AI_ANALYSIS_BATCH_SIZE,
        max_listings_for_ai: int = config.AI_ANALYSIS_MAX_LISTINGS,
        timeout: float = config.AI_ANALYSIS_TIMEOUT,
        detail_threshold: int = config.AI_ANALYSIS_DETAIL_THRESHOLD,
    ):
        self.orchestrator = orchestrator
        self.enabled = enabled
        self.batch_size = max(1, batch_size)
        self.max_listings_for_ai = max_listings_for_ai
        self.timeout = timeout
        self.detail_threshold = detail_threshold

    async def _ai_available(self) -> bool:
        if self.orchestrator is None:
            return False
        return (await self.orchestrator.health()).available

    async def _analyze_batch(self, query: str, batch: Sequence[Listing], detailed: bool, timeout: float) -> List[RelevanceResult]:
        prompt = build_analysis_prompt(query, batch, detailed)
        try:
            text = await asyncio.wait_for(self.orchestrator.complete(prompt, LISTING_ANALYSIS_SYSTEM_PROMPT), timeout)
        except asyncio.TimeoutError:
            log.warning("[Relevance] batch of %d timed out after %.0fs, using local analysis", len(batch), timeout)
            return analyze_locally(query, batch, detailed)
        except AIUnavailableError as e:
            log.warning("[Relevance] AI failed (%s), using local analysis", e)
            return analyze_locally(query, batch, detailed)

        raw = extract_json_array(text)
        results = normalize_model_results(raw) if raw else []
        if not results:
            log.info("[Relevance] no usable JSON array in model output (%d chars)", len(text or ""))
            return analyze_locally(query, batch, detailed)
        return merge_model_results(batch, results)

    async def filter_listings_by_relevance(
        self,
        query: str,
        candidates: Sequence[Listing],
        skip_ai: Optional[bool] = None,
        timeout: Optional[float] = None,
        force_detailed: bool = False,
    ) -> List[RelevanceResult]:
        skip = (not self.enabled) if skip_ai is None else skip_ai
        detailed = force_detailed or len(candidates) <= self.detail_threshold

        if skip or not candidates or len(candidates) > self.max_listings_for_ai:
            log.info("[Relevance] local analysis (%d listings)", len(candidates))
            return analyze_locally(query, candidates, detailed)
        if not await self._ai_available():
            log.info("[Relevance] AI unavailable, local analysis (%d listings)", len(candidates))
            return analyze_locally(query, candidates, detailed)

        limit = self.timeout if timeout is None else timeout
        log.info("[Relevance] %s AI analysis of %d listings", "detailed" if detailed else "brief", len(candidates))
        results: List[RelevanceResult] = []
        for i in range(0, len(candidates), self.batch_size):
            results += await self._analyze_batch(query, candidates[i:i + self.batch_size], detailed, limit)
        return results

    @staticmethod
    def _by_score(ranked: Sequence[RankedListing]) -> List[RankedListing]:
        # stable: ties keep aggregation order
        return sorted(ranked, key=lambda r: r.relevance.relevance_score, reverse=True)

    async def _rank(self, query: str, candidates: Sequence[Listing]) -> List[RankedListing]:
        by_id = {r.id: r for r in await self.filter_listings_by_relevance(query, candidates)}
        ranked = [
            RankedListing(
                listing=l,
                relevance=by_id.get(l.id) or RelevanceResult(id=l.id, is_relevant=True, relevance_score=50, reasoning="Default"),
            )
            for l in candidates
        ]
        return self._by_score([r for r in ranked if r.relevance.is_relevant])

    async def get_relevant_listings(self, query: str, candidates: Sequence[Listing]) -> List[RankedListing]:
        if not candidates:
            return []
        ranked = await self._rank(query, candidates)

        # few survivors from a large pool: redo them with the detailed prompt
        if ranked and len(ranked) <= self.detail_threshold < len(candidates):
            log.info("[Relevance] re-analyzing %d survivors in detail (from %d)", len(ranked), len(candidates))
            detailed = {
                r.id: r
                for r in await self.filter_listings_by_relevance(query, [x.listing for x in ranked], force_detailed=True)
            }
            ranked = self._by_score(
                [r.model_copy(update={"relevance": detailed.get(r.listing.id, r.relevance)}) for r in ranked]
            )
        return ranked
