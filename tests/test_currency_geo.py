"""Currency conversion, formatting and distance helpers."""
import pytest

from aipa import config
from aipa.errors import UnsupportedCurrencyError
from aipa.utils.currency import format_currency, guess_currency, to_eur
from aipa.utils.geo import GeoPoint, distance_km, within_radius

LISBON = GeoPoint(38.7223, -9.1393)
PORTO = GeoPoint(41.1579, -8.6291)


class TestToEur:
    def test_eur_is_identity(self):
        assert to_eur(1234.5, "EUR") == 1234.5

    def test_codes_are_case_insensitive(self):
        assert to_eur(100, " usd ") == pytest.approx(100 * config.FX_RATE_USD_EUR)

    def test_gbp(self):
        assert to_eur(100, "GBP") == pytest.approx(100 * config.FX_RATE_GBP_EUR)

    def test_unknown_currency(self):
        with pytest.raises(UnsupportedCurrencyError, match="Unsupported currency: CHF"):
            to_eur(100, "CHF")

    def test_unsupported_currency_is_a_value_error(self):
        with pytest.raises(ValueError):
            to_eur(1, "XYZ")


class TestGuessCurrency:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("under $500k", "USD"),
            ("300 dollars", "USD"),
            ("€50,000", "EUR"),
            ("50000 euros", "EUR"),
            ("£200k", "GBP"),
            ("500 pounds", "GBP"),
            ("land near porto", None),
        ],
    )
    def test_guess(self, text, expected):
        assert guess_currency(text) == expected


class TestFormatCurrency:
    def test_symbol_and_grouping(self):
        assert format_currency(50000, "EUR") == "€50,000"

    def test_rounds_to_whole_units(self):
        assert format_currency(1234.4, "eur") == "€1,234"

    def test_other_symbols(self):
        assert format_currency(900, "USD") == "$900"
        assert format_currency(900, "GBP") == "£900"

    def test_unknown_code_falls_back_to_suffix(self):
        assert format_currency(900, "chf") == "900 CHF"


class TestGeo:
    def test_lisbon_to_porto(self):
        assert 270 < distance_km(LISBON, PORTO) < 280

    def test_symmetric(self):
        assert distance_km(LISBON, PORTO) == pytest.approx(distance_km(PORTO, LISBON))

    def test_same_point(self):
        assert distance_km(LISBON, LISBON) == 0

    def test_within_radius(self):
        assert within_radius(LISBON, PORTO, 300)
        assert not within_radius(LISBON, PORTO, 250)
        assert within_radius(LISBON, LISBON, 0)
