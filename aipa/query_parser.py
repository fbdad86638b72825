"""Free-text query → structured price intent, property type and listing intent."""
import re
from typing import Optional, Tuple

from aipa.schemas import (
    AroundIntent,
    BetweenIntent,
    ExactIntent,
    NoIntent,
    OverIntent,
    ParsedQuery,
    PriceIntent,
    UnderIntent,
)
from aipa.utils.currency import guess_currency, to_eur

# "50,000" / "50.000" / "50 000" / "1.234,5" / "50000" / "1,5"
_NUM = r"(\d{1,3}(?:[ ,.]\d{3})+(?:[.,]\d+)?|\d+(?:[.,]\d+)?)"
_SUFFIX = r"\s*(k|thousand|mil|million|milh[õo]es|mln)?(?![a-z])"
_CUR = r"(?:€|£|\$|us\$|eur|usd|gbp)?\s*"
# "1000 m2" is an area, never a price
_NOT_AREA = r"(?!\s*(?:m2|m²|sqm|sq\s?m|square|hectares?|ha\b|metros))"
_AMOUNT = _CUR + _NUM + _SUFFIX + _NOT_AREA

BETWEEN_RE = re.compile(r"\b(?:between|from)\s+" + _AMOUNT + r"\s*(?:and|to|-|e|a)\s*" + _AMOUNT)
UNDER_RE = re.compile(r"(?:\b(?:under|below|max(?:imum)?|up to|less than|at most|até|no more than)|<)\s*" + _AMOUNT)
OVER_RE = re.compile(r"(?:\b(?:over|above|min(?:imum)?|at least|more than|from|desde)|>)\s*" + _AMOUNT)
AROUND_RE = re.compile(r"(?:\b(?:around|about|approx(?:imately)?|roughly|cerca de)|~)\s*" + _AMOUNT)
MARKED_RE = re.compile(
    r"(?:€|£|\$|\beur(?:os?)?\b|\busd\b|\bgbp\b)\s*" + _NUM + _SUFFIX
    + r"|" + _NUM + _SUFFIX + r"\s*(?:€|£|\$|\beur(?:os?)?\b|\busd\b|\bgbp\b)"
)
# Plain numbers only count as prices from 1000 up, or with a k/mil suffix ("2 bedroom" is not a price)
BARE_RE = re.compile(r"\b(\d{1,3}(?:[ ,.]\d{3})+|\d{4,})(?:[.,]\d+)?\b" + _NOT_AREA + r"|\b(\d+(?:[.,]\d+)?)\s*(k|mil)\b")

_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "mil": 1_000,
    "million": 1_000_000,
    "milhões": 1_000_000,
    "milhoes": 1_000_000,
    "mln": 1_000_000,
}

LAND_RE = re.compile(r"\b(land|plot|terrain|terreno|lote)s?\b")
APARTMENT_RE = re.compile(r"\b(apartment|apartamento|apt|flat)s?\b")
HOUSE_RE = re.compile(r"\b(house|villa|casa|moradia|vivenda)s?\b")
ROOM_RE = re.compile(r"\b(room|quarto)s?\b")

RENT_RE = re.compile(r"for rent|to rent|\brental|\barrendar|\balugar|\baluguer|per month|monthly|/month|/mo\b")
SALE_RE = re.compile(r"for sale|to buy|\bbuy\b|\bpurchase|\bcomprar|\bvenda\b|à venda")

LOCATION_RE = re.compile(r"\b(?:in|near|around|close to|perto de|em)\s+([a-zà-ÿ]+(?:\s+[a-zà-ÿ]+){0,2})", re.I)
_LOCATION_STOP = {
    "under", "below", "over", "above", "for", "with", "between", "around", "about", "max", "min",
    "up", "less", "more", "and", "or", "to", "from", "the", "a", "an", "sale", "rent", "budget",
    "at", "near", "in", "apartment", "apartments", "house", "houses", "land", "plot", "villa",
}
_NOT_LOCATIONS = {"portugal", "pt", "the", "a", "an"}


def parse_number(value: str, suffix: Optional[str] = None) -> float:
    """Parse a price tolerant of thousands separators and decimal commas."""
    s = value.replace(" ", "")
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", "") if re.fullmatch(r"\d{1,3}(?:,\d{3})+", s) else s.replace(",", ".")
    elif "." in s:
        if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", s):
            s = s.replace(".", "")
    number = float(s)
    if suffix:
        number *= _MULTIPLIERS.get(suffix.lower(), 1)
    return number


def _first_amount(groups: Tuple[Optional[str], ...]) -> float:
    return parse_number(groups[0], groups[1])


def parse_price_intent(text: str) -> PriceIntent:
    lower = text.lower()
    currency = guess_currency(text)

    m = BETWEEN_RE.search(lower)
    if m:
        low = parse_number(m.group(1), m.group(2))
        high = parse_number(m.group(3), m.group(4))
        if low > high:
            low, high = high, low
        return BetweenIntent(min=low, max=high, currency=currency)

    m = UNDER_RE.search(lower)
    if m:
        return UnderIntent(max=_first_amount(m.groups()), currency=currency)

    m = OVER_RE.search(lower)
    if m:
        return OverIntent(min=_first_amount(m.groups()), currency=currency)

    m = AROUND_RE.search(lower)
    if m:
        return AroundIntent(target=_first_amount(m.groups()), currency=currency)

    m = MARKED_RE.search(lower)
    if m:
        if m.group(1) is not None:
            target = parse_number(m.group(1), m.group(2))
        else:
            target = parse_number(m.group(3), m.group(4))
        return ExactIntent(target=target, currency=currency)

    m = BARE_RE.search(lower)
    if m:
        if m.group(1) is not None:
            target = parse_number(m.group(1))
        else:
            target = parse_number(m.group(2), m.group(3))
        return ExactIntent(target=target, currency=currency)

    return NoIntent()


def detect_property_type(lower: str) -> Optional[str]:
    # later matches win: "house with land" is a house search
    property_type = None
    if ROOM_RE.search(lower):
        property_type = "room"
    if LAND_RE.search(lower):
        property_type = "land"
    if APARTMENT_RE.search(lower):
        property_type = "apartment"
    if HOUSE_RE.search(lower):
        property_type = "house"
    return property_type


def detect_listing_intent(lower: str) -> Optional[str]:
    if RENT_RE.search(lower):
        return "rent"
    if SALE_RE.search(lower):
        return "sale"
    return None


def detect_location(text: str) -> Optional[str]:
    for m in LOCATION_RE.finditer(text):
        words = []
        for word in m.group(1).split():
            if word.lower() in _LOCATION_STOP:
                break
            words.append(word)
        if words and " ".join(words).lower() not in _NOT_LOCATIONS:
            return " ".join(words)
    return None


def parse_user_query(text: str) -> ParsedQuery:
    raw = text.strip()
    lower = raw.lower()
    return ParsedQuery(
        raw=raw,
        location_text=detect_location(raw),
        property_type=detect_property_type(lower),
        price_intent=parse_price_intent(raw),
        currency=guess_currency(raw),
        listing_intent=detect_listing_intent(lower),
    )


def convert_intent_to_eur(intent: PriceIntent, fallback_currency: str) -> PriceIntent:
    """Normalise every amount of the intent to EUR.

    The intent's own currency wins over ``fallback_currency`` (the caller's
    location currency). Unknown codes raise ``UnsupportedCurrencyError``.
    """
    if intent.type == "none":
        return intent
    currency = intent.currency or fallback_currency
    if intent.type == "under":
        return UnderIntent(max=to_eur(intent.max, currency), currency="EUR")
    if intent.type == "over":
        return OverIntent(min=to_eur(intent.min, currency), currency="EUR")
    if intent.type == "between":
        return BetweenIntent(min=to_eur(intent.min, currency), max=to_eur(intent.max, currency), currency="EUR")
    if intent.type == "exact":
        return ExactIntent(target=to_eur(intent.target, currency), currency="EUR")
    return AroundIntent(target=to_eur(intent.target, currency), currency="EUR")
