from aipa.schemas import MatchRules, PriceIntent, PriceRange


def _exact_delta(value: float, rules: MatchRules) -> float:
    return min(value * rules.exact_tolerance_percent, rules.exact_tolerance_absolute_eur)


def _near_miss_delta(value: float, rules: MatchRules) -> float:
    return max(value * rules.near_miss_tolerance_percent, rules.near_miss_tolerance_absolute_eur)


def build_strict_price_range(intent: PriceIntent, currency: str, rules: MatchRules) -> PriceRange:
    if intent.type == "under":
        return PriceRange(max=intent.max, currency=currency)
    if intent.type == "over":
        return PriceRange(min=intent.min, currency=currency)
    if intent.type == "between":
        return PriceRange(min=intent.min, max=intent.max, currency=currency)
    if intent.type in ("exact", "around"):
        delta = _exact_delta(intent.target, rules)
        return PriceRange(min=intent.target - delta, max=intent.target + delta, currency=currency)
    return PriceRange(currency=currency)


def build_near_miss_price_range(intent: PriceIntent, currency: str, rules: MatchRules) -> PriceRange:
    if intent.type == "under":
        return PriceRange(max=intent.max + _near_miss_delta(intent.max, rules), currency=currency)
    if intent.type == "over":
        return PriceRange(min=max(0.0, intent.min - _near_miss_delta(intent.min, rules)), currency=currency)
    if intent.type == "between":
        return PriceRange(
            min=max(0.0, intent.min - _near_miss_delta(intent.min, rules)),
            max=intent.max + _near_miss_delta(intent.max, rules),
            currency=currency,
        )
    if intent.type in ("exact", "around"):
        delta = _near_miss_delta(intent.target, rules)
        return PriceRange(min=max(0.0, intent.target - delta), max=intent.target + delta, currency=currency)
    return PriceRange(currency=currency)


def in_range(price: float, price_range: PriceRange) -> bool:
    if price_range.min is not None and price < price_range.min:
        return False
    if price_range.max is not None and price > price_range.max:
        return False
    return True
