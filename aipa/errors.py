from typing import Optional


class AIPAError(Exception):
    """Base class for errors raised by the property assistant."""


class UnsupportedCurrencyError(AIPAError, ValueError):
    def __init__(self, currency: str):
        super().__init__(f"Unsupported currency: {currency}")
        self.currency = currency


class AIUnavailableError(AIPAError):
    """No language-model provider could serve the request."""


class ProviderError(AIPAError):
    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Timeouts, refused/reset connections and 5xx answers. Safe to retry."""


class RateLimitError(ProviderError):
    """429 / quota signals. Never retried on the same provider."""
