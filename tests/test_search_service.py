"""
Search orchestration tests
==========================

Tests for aipa/search_service.py

1. The strict window is tried first; near-miss only runs when it comes back empty
2. Adapter failures fail closed with an empty, explained response
3. Rent/sale intent filters listings and decorates prices
4. Picking falls back to a deterministic sort whenever AI cannot answer
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from aipa.adapters.mock import MockAdapter
from aipa.aggregator import ListingAggregator
from aipa.errors import AIUnavailableError, UnsupportedCurrencyError
from aipa.relevance import RelevanceEngine
from aipa.schemas import AIHealth, BlockedSite, MatchRules, PriceRange, SearchRequest, UserLocation
from aipa.search_service import (
    SearchOrchestrator,
    compose_note,
    detect_listing_type,
    detect_property_type,
    filter_by_listing_intent,
    filter_listings,
    requested_pick_count,
    sort_for_pick,
    to_card,
)
from aipa.search_store import SearchStore
from aipa.utils.geo import GeoPoint


class CountingMockAdapter(MockAdapter):
    def __init__(self):
        super().__init__()
        self.contexts = []

    async def _search(self, ctx):
        self.contexts.append(ctx)
        return await super()._search(ctx)


def _service(adapter=None, **kwargs) -> SearchOrchestrator:
    kwargs.setdefault("relevance", RelevanceEngine(None))
    kwargs.setdefault("rules", MatchRules())
    kwargs.setdefault("index_results", False)
    aggregator = ListingAggregator([adapter or MockAdapter()])
    return SearchOrchestrator(aggregator, store=SearchStore(), **kwargs)


def _ai(complete=None, available=True):
    ai = MagicMock()
    ai.health = AsyncMock(return_value=AIHealth(available=available, backend="groq" if available else "none"))
    ai.complete = complete or AsyncMock(return_value="")
    ai.generate_results_response = AsyncMock(return_value="Here is what I found.")
    return ai


class TestRunSearch:
    @pytest.mark.asyncio
    async def test_exact_match(self):
        adapter = CountingMockAdapter()
        service = _service(adapter)

        response = await service.run_search(SearchRequest(query="land under €20000"))

        assert response.match_type == "exact"
        assert {c.id for c in response.listings} == {"mock-idealista-001", "mock-idealista-010", "mock-kyero-011"}
        assert response.applied_price_range.max == 20000
        assert response.note == "Showing 3 listings."
        assert response.summary is None
        assert len(adapter.contexts) == 1
        assert adapter.contexts[0].property_type == "land"

    @pytest.mark.asyncio
    async def test_near_miss_only_after_empty_strict_pass(self):
        adapter = CountingMockAdapter()
        service = _service(adapter)

        response = await service.run_search(SearchRequest(query="land around 30000"))

        assert len(adapter.contexts) == 2
        strict, near = (ctx.price_range for ctx in adapter.contexts)
        assert (strict.min, strict.max) == (29950, 30050)
        assert (near.min, near.max) == (27000, 33000)
        assert response.match_type == "near-miss"
        assert [c.id for c in response.listings] == ["mock-supercasa-012"]
        assert response.applied_price_range.min == 27000
        assert response.note == "No exact matches. Showing 1 closest matches."

    @pytest.mark.asyncio
    async def test_rent_intent(self):
        service = _service()
        response = await service.run_search(SearchRequest(query="apartment for rent under 2000"))

        [card] = response.listings
        assert card.id == "mock-olx-013"
        assert card.display_price == "€1,200/mo"
        assert card.listing_type == "rent"
        assert response.note == "Showing 1 for rent listings."

    @pytest.mark.asyncio
    async def test_unsupported_currency_propagates(self):
        service = _service()
        request = SearchRequest(query="land under 20000", user_location=UserLocation(currency="JPY"))
        with pytest.raises(UnsupportedCurrencyError):
            await service.run_search(request)

    @pytest.mark.asyncio
    async def test_location_currency_converts_prices(self):
        adapter = CountingMockAdapter()
        service = _service(adapter)
        await service.run_search(SearchRequest(query="land under 20000", user_location=UserLocation(currency="GBP")))
        assert adapter.contexts[0].price_range.max > 20000

    @pytest.mark.asyncio
    async def test_failure_is_closed(self):
        aggregator = MagicMock()
        aggregator.aggregate = AsyncMock(side_effect=RuntimeError("boom"))
        service = SearchOrchestrator(aggregator, RelevanceEngine(None), rules=MatchRules(), index_results=False)

        response = await service.run_search(SearchRequest(query="land under 20000"))

        assert response.listings == []
        assert response.match_type == "exact"
        assert "failed" in response.note
        assert service.store.get(response.search_id) is None

    @pytest.mark.asyncio
    async def test_result_is_stored(self):
        service = _service()
        location = UserLocation(label="Lisboa", lat=38.72, lng=-9.14)
        response = await service.run_search(SearchRequest(query="land under 20000", user_location=location))

        stored = service.store.get(response.search_id)
        assert stored.query == "land under 20000"
        assert stored.user_location == location
        assert [l.id for l in stored.listings] == [c.id for c in response.listings]

    @pytest.mark.asyncio
    async def test_cards_carry_distance(self):
        service = _service()
        location = UserLocation(label="Lisboa", lat=38.72, lng=-9.14)
        response = await service.run_search(SearchRequest(query="land under 20000", user_location=location))
        assert all(c.distance_km is not None and c.distance_km > 0 for c in response.listings)

    @pytest.mark.asyncio
    async def test_summary_blocked_sites_and_indexing(self):
        ai = _ai()
        rag = MagicMock()
        rag.index_listings = AsyncMock(return_value=3)
        diagnostics = MagicMock()
        blocked = BlockedSite(site_id="olx", site_name="OLX Portugal", required_method="NONE", reason="down")
        diagnostics.blocked_sites = AsyncMock(return_value=[blocked])
        service = _service(ai=ai, rag=rag, diagnostics=diagnostics, index_results=True)

        response = await service.run_search(SearchRequest(query="land under 20000"))

        assert response.summary == "Here is what I found."
        assert response.blocked_sites == [blocked]
        rag.index_listings.assert_awaited_once()
        assert len(rag.index_listings.await_args.args[0]) == 3
        args = ai.generate_results_response.await_args.args
        assert args[1:4] == ("exact", 3, {"min": None, "max": 20000})


class TestHelpers:
    def test_listing_type_from_adapter_wins(self, make_listing):
        assert detect_listing_type(make_listing(listing_type="sale", price_eur=500)) == "sale"

    @pytest.mark.parametrize(
        "title, price, expected",
        [
            ("Apartamento para arrendar", 800, "rent"),
            ("T1 in Porto", 2000, "rent"),
            ("Moradia", 150000, "sale"),
            ("Terreno à venda", 4000, "sale"),
            ("Something", 0, None),
        ],
    )
    def test_listing_type_from_text_and_price(self, make_listing, title, price, expected):
        assert detect_listing_type(make_listing(title=title, price_eur=price)) == expected

    @pytest.mark.parametrize(
        "title, property_type, expected",
        [
            ("Quarto em Lisboa", "land", "room"),
            ("Moradia com jardim", None, "house"),
            ("Terreno rústico", None, "land"),
            ("Anything", "apartment", "apartment"),
            ("Anything", None, None),
        ],
    )
    def test_property_type(self, make_listing, title, property_type, expected):
        assert detect_property_type(make_listing(title=title, property_type=property_type)) == expected

    def test_filter_listings_by_radius(self, make_listing):
        listings = [
            make_listing(id="near", lat=38.72, lng=-9.14),
            make_listing(id="far", lat=41.15, lng=-8.61),
            make_listing(id="nowhere"),
            make_listing(id="pricey", lat=38.72, lng=-9.14, price_eur=90000),
        ]
        kept = filter_listings(listings, PriceRange(max=50000, currency="EUR"), 50, GeoPoint(38.72, -9.14))
        assert [(l.id, d) for l, d in kept] == [("near", 0), ("nowhere", None)]

    def test_filter_by_listing_intent_keeps_unknown(self, make_listing):
        pairs = [
            (make_listing(id="rent", listing_type="rent"), None),
            (make_listing(id="sale", listing_type="sale"), 1.0),
            (make_listing(id="unknown", title="Something", price_eur=0), None),
        ]
        assert [l.id for l, _ in filter_by_listing_intent(pairs, "sale")] == ["sale", "unknown"]
        assert filter_by_listing_intent(pairs, None) == pairs

    def test_to_card(self, make_listing):
        listing = make_listing(
            id="olx-1", title="T2", price_eur=1200, listing_type="rent", city="Lisboa", photos=["https://img.test/a.jpg"]
        )
        card = to_card(listing, 12.345, 80, "Good match")
        assert card.display_price == "€1,200/mo"
        assert card.distance_km == 12.3
        assert card.image == "https://img.test/a.jpg"
        assert card.match_score == 80
        assert card.ai_reasoning == "Good match"

    @pytest.mark.parametrize(
        "args, expected",
        [
            (("exact", 5, 5, None), "Showing 5 listings."),
            (("exact", 3, 5, "sale"), "Found 3 for sale listings (filtered from 5)."),
            (("near-miss", 2, 9, None), "AI analyzed 9 near-miss results, showing 2 most relevant."),
            (("near-miss", 2, 2, "rent"), "No exact matches. Showing 2 closest for rent matches."),
        ],
    )
    def test_compose_note(self, args, expected):
        assert compose_note(*args) == expected

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("show me the 3 best", 3),
            ("two closest", 2),
            ("a few cheap ones", 3),
            ("plots around 1000 m2", 2),
            ("best options", 2),
        ],
    )
    def test_requested_pick_count(self, query, expected):
        assert requested_pick_count(query, 2) == expected

    def test_sort_for_pick(self, make_listing):
        listings = [
            make_listing(id="a", price_eur=300, area_sqm=900),
            make_listing(id="b", price_eur=100, area_sqm=2000),
            make_listing(id="c", price_eur=200, area_sqm=1100),
        ]
        distances = [5.0, None, 1.0]
        assert [l.id for l in sort_for_pick("cheapest", listings, distances)] == ["b", "c", "a"]
        assert [l.id for l in sort_for_pick("closest", listings, distances)] == ["c", "a", "b"]
        assert [l.id for l in sort_for_pick("around 1000 m2", listings, distances)] == ["a", "c", "b"]


class TestPickBestListings:
    @pytest.fixture
    def listings(self, make_listing):
        return [
            make_listing(id="a", price_eur=300, lat=41.15, lng=-8.61),
            make_listing(id="b", price_eur=100, lat=37.02, lng=-7.93),
            make_listing(id="c", price_eur=200, lat=38.72, lng=-9.14),
        ]

    @pytest.mark.asyncio
    async def test_empty(self):
        response = await _service().pick_best_listings("best", [])
        assert response.listings == []
        assert response.explanation == "No listings available to pick from."

    @pytest.mark.asyncio
    async def test_without_ai_sorts_by_price(self, listings):
        response = await _service().pick_best_listings("the 2 cheapest", listings)
        assert [l.id for l in response.listings] == ["b", "c"]
        assert response.explanation == "Here are the 2 listings that best match your criteria."

    @pytest.mark.asyncio
    async def test_count_is_clamped(self, listings):
        response = await _service().pick_best_listings("pick 5", listings)
        assert len(response.listings) == 3

    @pytest.mark.asyncio
    async def test_closest_uses_user_location(self, listings):
        lisbon = UserLocation(label="Lisboa", lat=38.72, lng=-9.14)
        response = await _service().pick_best_listings("the closest one", listings, user_location=lisbon)
        assert [l.id for l in response.listings] == ["c"]

    @pytest.mark.asyncio
    async def test_ai_pick(self, listings):
        reply = (
            '{"selectedIndices": [2, 0, 2], "listingAnalyses": {"2": "'
            + "Close to the centre, fairly priced and in good condition overall." +
            '", "0": "short"}, "explanation": "Balanced choices."}'
        )
        ai = _ai(complete=AsyncMock(return_value=reply))
        response = await _service(ai=ai).pick_best_listings("best two", listings)

        assert [l.id for l in response.listings] == ["c", "a"]
        assert list(response.reasoning) == ["c"]
        assert response.explanation == "Balanced choices."

    @pytest.mark.asyncio
    async def test_ai_invalid_indices_fall_back(self, listings):
        ai = _ai(complete=AsyncMock(return_value='{"selectedIndices": [7, "x"]}'))
        response = await _service(ai=ai).pick_best_listings("best two", listings)
        assert [l.id for l in response.listings] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_ai_failure_falls_back(self, listings):
        ai = _ai(complete=AsyncMock(side_effect=AIUnavailableError("down")))
        response = await _service(ai=ai).pick_best_listings("best two", listings)
        assert [l.id for l in response.listings] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_unavailable_ai_not_called(self, listings):
        ai = _ai(available=False)
        await _service(ai=ai).pick_best_listings("best two", listings)
        ai.complete.assert_not_awaited()
