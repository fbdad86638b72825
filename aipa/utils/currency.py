from typing import Optional
from aipa import config
from aipa.errors import UnsupportedCurrencyError

_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}


def _normalize(currency: str) -> str:
    return currency.strip().upper()


def to_eur(amount: float, currency: str) -> float:
    code = _normalize(currency)
    if code == "EUR":
        return amount
    if code == "USD":
        return amount * config.FX_RATE_USD_EUR
    if code == "GBP":
        return amount * config.FX_RATE_GBP_EUR
    raise UnsupportedCurrencyError(currency)


def guess_currency(text: str) -> Optional[str]:
    lower = text.lower()
    if "usd" in lower or "$" in lower or "dollar" in lower:
        return "USD"
    if "eur" in lower or "€" in lower:
        return "EUR"
    if "gbp" in lower or "£" in lower or "pound" in lower:
        return "GBP"
    return None


def format_currency(amount: float, currency: str) -> str:
    code = _normalize(currency)
    symbol = _SYMBOLS.get(code)
    if symbol is None:
        return f"{amount:.0f} {code}"
    return f"{symbol}{amount:,.0f}"
