import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from aipa import config
from aipa.ai import prompts
from aipa.ai.json_extract import extract_json_object
from aipa.ai.providers import OllamaProvider, Provider, default_providers
from aipa.errors import AIUnavailableError, ProviderError, RateLimitError, TransientProviderError
from aipa.query_parser import parse_user_query
from aipa.schemas import (
    AIHealth,
    AIMessage,
    AISearchResponse,
    BackendSwitchResult,
    ParsedSearchIntent,
    ProviderDescriptor,
)
from aipa.utils.currency import format_currency

log = logging.getLogger(__name__)

NONE = "none"
UNAVAILABLE_CHAT_REPLY = "AI is currently unavailable. Please try your search - I can still find listings using the search system."
FAILED_CHAT_REPLY = "I'm having trouble connecting to the AI. Please try again."

_PRICE_INTENTS = {"under", "over", "between", "exact", "around", "none"}


def _num(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def clean_response(text: str) -> str:
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"\{[\s\S]*?\}", "", text)
    return text.strip()[:500]


def fallback_parse(query: str) -> AISearchResponse:
    """Deterministic intent parse used whenever no model can answer."""
    parsed = parse_user_query(query)
    intent = parsed.price_intent
    fields: Dict[str, Any] = {"price_intent": intent.type}
    if intent.type == "under":
        fields["price_max"] = intent.max
    elif intent.type == "over":
        fields["price_min"] = intent.min
    elif intent.type == "between":
        fields["price_min"], fields["price_max"] = intent.min, intent.max
    elif intent.type in ("exact", "around"):
        fields["price_target"] = intent.target

    parsed_intent = ParsedSearchIntent(
        property_type=parsed.property_type,
        currency=parsed.currency,
        location=parsed.location_text,
        raw_query=query,
        **fields,
    )

    symbol_currency = parsed.currency or "EUR"
    message = f"Searching for {parsed.property_type or 'properties'} "
    if parsed.location_text:
        message += f"near {parsed.location_text} "
    if parsed_intent.price_target:
        message += f"around {format_currency(parsed_intent.price_target, symbol_currency)}"
    elif parsed_intent.price_max:
        message += f"under {format_currency(parsed_intent.price_max, symbol_currency)}"
    elif parsed_intent.price_min:
        message += f"over {format_currency(parsed_intent.price_min, symbol_currency)}"
    return AISearchResponse(parsed_intent=parsed_intent, response_message=message.rstrip() + "...")


def intent_from_model(data: Dict[str, Any], query: str) -> Optional[AISearchResponse]:
    raw = data.get("parsedIntent")
    if not isinstance(raw, dict):
        return None
    price_intent = str(raw.get("priceIntent") or "none").lower()
    beds = _num(raw.get("beds"))
    parsed_intent = ParsedSearchIntent(
        property_type=(str(raw["propertyType"]).lower() if raw.get("propertyType") not in (None, "null") else None),
        price_min=_num(raw.get("priceMin")),
        price_max=_num(raw.get("priceMax")),
        price_target=_num(raw.get("priceTarget")),
        price_intent=price_intent if price_intent in _PRICE_INTENTS else "none",
        currency=raw.get("currency") or None,
        location=raw.get("location") or None,
        beds=int(beds) if beds is not None else None,
        area_min=_num(raw.get("areaMin")),
        area_max=_num(raw.get("areaMax")),
        raw_query=query,
    )
    question = data.get("clarificationQuestion")
    return AISearchResponse(
        parsed_intent=parsed_intent,
        clarification_needed=bool(data.get("clarificationNeeded", False)),
        clarification_question=str(question) if question else None,
        response_message=str(data.get("responseMessage") or "Let me search for that..."),
    )


class AIOrchestrator:
    """Routes completions across language-model providers with retry and fallback.

    The first call probes providers in priority order (fast cloud, local,
    secondary cloud) unless a backend was already chosen by hand. Each
    completion starts with the active provider and falls through the others.
    """

    def __init__(
        self,
        providers: Optional[Sequence[Provider]] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        rag=None,
        max_retries: int = config.AI_MAX_RETRIES,
        backoff_base: float = config.AI_BACKOFF_BASE,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.providers: List[Provider] = list(providers) if providers is not None else default_providers(self.client)
        self.rag = rag
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

        self.active: str = NONE
        self._probed = False
        self._probe_lock: Optional[asyncio.Lock] = None
        self._available: Dict[str, bool] = {}

    def _provider(self, provider_id: str) -> Optional[Provider]:
        for p in self.providers:
            if p.id == provider_id:
                return p
        return None

    # ---- backend selection ---------------------------------------------------

    async def detect_backend(self) -> str:
        self._available = {}
        self.active = NONE
        for p in self.providers:
            available = await p.is_available()
            self._available[p.id] = available
            if available and self.active == NONE:
                self.active = p.id
        self._probed = True
        log.info("[AI] backend: %s", self.active)
        return self.active

    async def health(self) -> AIHealth:
        if not self._probed:
            if self._probe_lock is None:
                self._probe_lock = asyncio.Lock()
            async with self._probe_lock:
                if not self._probed:
                    await self.detect_backend()
        return AIHealth(available=self.active != NONE, backend=self.active)

    async def get_available_backends(self) -> List[ProviderDescriptor]:
        out = []
        for p in self.providers:
            models = await p.list_models()
            out.append(
                ProviderDescriptor(
                    id=p.id,
                    name=p.name,
                    available=bool(models) if isinstance(p, OllamaProvider) else p.configured(),
                    models=models,
                    is_cloud=p.is_cloud,
                )
            )
        return out

    async def set_active_backend(self, backend: str, model: Optional[str] = None) -> BackendSwitchResult:
        provider = self._provider(backend)
        if provider is None:
            return BackendSwitchResult(success=False, message=f"Unknown backend: {backend}")

        models = await provider.list_models()
        available = bool(models) if isinstance(provider, OllamaProvider) else provider.configured()
        if not available:
            return BackendSwitchResult(success=False, message=f"Backend {backend} is not available")

        if model:
            known = provider.has_model(models, model) if isinstance(provider, OllamaProvider) else model in models
            if not known:
                return BackendSwitchResult(
                    success=False,
                    message=f"Model {model} not found. Available: {', '.join(models)}",
                )
            provider.model = model

        self.active = backend
        self._available[backend] = True
        self._probed = True
        log.info("[AI] backend switched to %s%s", backend, f" ({model})" if model else "")
        return BackendSwitchResult(
            success=True,
            message=f"Switched to {provider.name}" + (f" with model {model}" if model else ""),
        )

    def current_backend_info(self) -> Dict[str, str]:
        provider = self._provider(self.active)
        return {"backend": self.active, "model": provider.model if provider else "unknown"}

    # ---- completion ----------------------------------------------------------

    def _chain(self) -> List[Provider]:
        chain = []
        active = self._provider(self.active)
        if active is not None:
            chain.append(active)
        chain += [p for p in self.providers if p is not active and self._available.get(p.id)]
        return chain

    async def _call_with_retry(self, provider: Provider, prompt: str, system_prompt: Optional[str], history: Sequence[AIMessage]) -> str:
        attempt = 0
        while True:
            try:
                return await provider.complete(prompt, system_prompt, history)
            except TransientProviderError as e:
                if attempt + 1 >= self.max_retries:
                    raise
                delay = self.backoff_base * (2 ** attempt)
                log.warning("[AI] %s attempt %d failed (%s), retrying in %.1fs", provider.id, attempt + 1, e, delay)
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

    async def complete(self, prompt: str, system_prompt: Optional[str] = None, history: Sequence[AIMessage] = ()) -> str:
        await self.health()
        chain = self._chain()
        if not chain:
            raise AIUnavailableError("no AI provider available")

        last: Optional[Exception] = None
        for provider in chain:
            try:
                log.debug("[AI] trying %s", provider.id)
                return await self._call_with_retry(provider, prompt, system_prompt, history)
            except RateLimitError as e:
                log.warning("[AI] %s rate limited, falling back", provider.id)
                last = e
            except ProviderError as e:
                log.warning("[AI] %s failed: %s", provider.id, str(e)[:200])
                last = e
        raise AIUnavailableError(f"all AI providers failed: {last}") from last

    # ---- higher-level helpers -------------------------------------------------

    async def parse_intent(self, query: str) -> AISearchResponse:
        if not (await self.health()).available:
            return fallback_parse(query)
        try:
            text = await self.complete(f'Parse this property search query and respond with JSON only:\n\n"{query}"', prompts.PROPERTY_SYSTEM_PROMPT)
        except AIUnavailableError as e:
            log.info("[AI] intent parse fell back: %s", e)
            return fallback_parse(query)
        data = extract_json_object(text)
        parsed = intent_from_model(data, query) if data else None
        return parsed or fallback_parse(query)

    async def generate_results_response(
        self,
        query: str,
        match_type: str,
        listings_count: int,
        price_range: Dict[str, Optional[float]],
        locations: Sequence[str],
    ) -> str:
        fallback = (
            f"Found {listings_count} listings matching your search."
            if match_type == "exact"
            else f"No exact matches at that price. Found {listings_count} alternatives within the acceptable range."
        )
        if not (await self.health()).available:
            return fallback

        low = price_range.get("min")
        high = price_range.get("max")
        prompt = (
            f'User searched for: "{query}"\n'
            f"Results: {listings_count} listings ({match_type} match)\n"
            f"Price range: {low if low is not None else 'any'} - {high if high is not None else 'any'} EUR\n"
            f"Locations: {', '.join(locations) or 'Various Portugal'}\n\n"
            "Write a brief, helpful response (2-3 sentences) about these results. Be conversational."
        )
        try:
            text = clean_response(await self.complete(prompt, prompts.RESULTS_SYSTEM_PROMPT))
        except AIUnavailableError as e:
            log.info("[AI] summary fell back: %s", e)
            return fallback
        return text or fallback

    async def chat(
        self,
        message: str,
        history: Sequence[AIMessage] = (),
        search_context: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> str:
        if not (await self.health()).available:
            return UNAVAILABLE_CHAT_REPLY

        parts = []
        if self.rag is not None:
            knowledge = await self.rag.build_context(
                message,
                include_knowledge=True,
                include_listings=False,
                include_conversations=bool(conversation_id),
                conversation_id=conversation_id,
                max_tokens=1500,
            )
            if knowledge:
                parts.append(f"KNOWLEDGE CONTEXT:\n{knowledge}")
        if search_context:
            parts.append(f"RECENT SEARCH RESULTS:\n{search_context}")
        prompt = "\n\n".join(parts + [f"USER QUESTION: {message}"]) if parts else message

        try:
            reply = await self.complete(prompt, prompts.RAG_SYSTEM_PROMPT, history)
        except AIUnavailableError as e:
            log.error("[AI] chat failed: %s", e)
            return FAILED_CHAT_REPLY

        if conversation_id and self.rag is not None:
            try:
                await self.rag.store_conversation(conversation_id, message, reply, search_context)
            except OSError as e:
                log.error("[RAG] failed to store conversation %s: %s", conversation_id, e)
        return reply

    async def close(self):
        if self._owns_client:
            await self.client.aclose()
