"""
Query parser tests
==================

Tests for aipa/query_parser.py: price intents, number formats, currency,
location, property type and listing intent.
"""
import pytest

from aipa import config
from aipa.errors import UnsupportedCurrencyError
from aipa.query_parser import (
    convert_intent_to_eur,
    detect_listing_intent,
    detect_location,
    detect_property_type,
    parse_number,
    parse_price_intent,
    parse_user_query,
)
from aipa.schemas import BetweenIntent, NoIntent, OverIntent, UnderIntent


class TestParseNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("50000", 50000),
            ("50,000", 50000),
            ("50.000", 50000),
            ("50 000", 50000),
            ("1.234,5", 1234.5),
            ("1,234.5", 1234.5),
            ("1,5", 1.5),
            ("2.5", 2.5),
        ],
    )
    def test_separators(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize(
        "raw, suffix, expected",
        [
            ("50", "k", 50000),
            ("200", "mil", 200000),
            ("3", "thousand", 3000),
            ("1,5", "million", 1500000),
            ("2", "milhões", 2000000),
            ("1.2", "mln", 1200000),
        ],
    )
    def test_suffix_multipliers(self, raw, suffix, expected):
        assert parse_number(raw, suffix) == pytest.approx(expected)


class TestParsePriceIntent:
    def test_under_with_euro_sign_and_k(self):
        intent = parse_price_intent("land under €50k near Porto")
        assert intent.type == "under"
        assert intent.max == 50000
        assert intent.currency == "EUR"

    def test_between_with_grouped_numbers(self):
        intent = parse_price_intent("apartment between 100,000 and 150,000 in Lisbon")
        assert intent == BetweenIntent(min=100000, max=150000)

    def test_between_swaps_reversed_bounds(self):
        intent = parse_price_intent("from 2000 to 1000")
        assert (intent.min, intent.max) == (1000, 2000)

    def test_over(self):
        assert parse_price_intent("house over 300000") == OverIntent(min=300000)

    def test_around(self):
        intent = parse_price_intent("house around 300000")
        assert intent.type == "around"
        assert intent.target == 300000

    def test_currency_marked_number_is_exact(self):
        intent = parse_price_intent("apartment $200k")
        assert intent.type == "exact"
        assert intent.target == 200000
        assert intent.currency == "USD"

    def test_bare_large_number_is_exact(self):
        intent = parse_price_intent("villa 450000 Algarve")
        assert intent.type == "exact"
        assert intent.target == 450000
        assert intent.currency is None

    def test_small_numbers_are_not_prices(self):
        assert parse_price_intent("2 bedroom house") == NoIntent()

    def test_area_is_not_a_price(self):
        assert parse_price_intent("plot of 1000 m2 near Faro") == NoIntent()

    def test_pound_sign_sets_gbp(self):
        assert parse_price_intent("under £80,000") == UnderIntent(max=80000, currency="GBP")

    def test_no_price(self):
        assert parse_price_intent("T2 for rent in Lisbon") == NoIntent()


class TestDetectors:
    def test_location_after_preposition(self):
        assert detect_location("land under €50k near Porto") == "Porto"

    def test_location_stops_at_keywords(self):
        assert detect_location("house in Cascais under 500000") == "Cascais"

    def test_multiword_location(self):
        assert detect_location("apartment in Vila Nova") == "Vila Nova"

    def test_country_is_not_a_location(self):
        assert detect_location("land in Portugal") is None

    def test_no_location(self):
        assert detect_location("cheap land") is None

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("cheap land", "land"),
            ("terreno rústico", "land"),
            ("flat with balcony", "apartment"),
            ("house with land", "house"),
            ("room in shared flat", "apartment"),
            ("single room", "room"),
            ("anything nice", None),
        ],
    )
    def test_property_type_precedence(self, text, expected):
        assert detect_property_type(text) == expected

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("t2 for rent in lisbon", "rent"),
            ("apartment 900 per month", "rent"),
            ("house for sale", "sale"),
            ("want to buy land", "sale"),
            ("land near porto", None),
        ],
    )
    def test_listing_intent(self, text, expected):
        assert detect_listing_intent(text) == expected


class TestParseUserQuery:
    def test_full_query(self):
        parsed = parse_user_query("  Land under €50k near Porto ")
        assert parsed.raw == "Land under €50k near Porto"
        assert parsed.location_text == "Porto"
        assert parsed.property_type == "land"
        assert parsed.price_intent.type == "under"
        assert parsed.currency == "EUR"
        assert parsed.listing_intent is None

    def test_rent_query(self):
        parsed = parse_user_query("T2 apartment for rent in Lisbon")
        assert parsed.listing_intent == "rent"
        assert parsed.property_type == "apartment"
        assert parsed.price_intent.type == "none"


class TestConvertIntentToEur:
    def test_eur_passes_through(self):
        assert convert_intent_to_eur(UnderIntent(max=1000, currency="EUR"), "USD") == UnderIntent(max=1000, currency="EUR")

    def test_intent_currency_wins_over_fallback(self):
        converted = convert_intent_to_eur(UnderIntent(max=100, currency="USD"), "EUR")
        assert converted.max == pytest.approx(100 * config.FX_RATE_USD_EUR)
        assert converted.currency == "EUR"

    def test_fallback_currency_used_when_intent_has_none(self):
        converted = convert_intent_to_eur(BetweenIntent(min=100, max=200), "GBP")
        assert converted.min == pytest.approx(100 * config.FX_RATE_GBP_EUR)
        assert converted.max == pytest.approx(200 * config.FX_RATE_GBP_EUR)

    def test_no_intent_unchanged(self):
        assert convert_intent_to_eur(NoIntent(), "JPY") == NoIntent()

    def test_unsupported_currency_raises(self):
        with pytest.raises(UnsupportedCurrencyError) as exc:
            convert_intent_to_eur(UnderIntent(max=100), "JPY")
        assert exc.value.currency == "JPY"
