"""
AI orchestration tests
======================

Tests for aipa/ai/orchestrator.py and aipa/ai/providers.py

1. Rate limits move on to the next provider without retrying
2. Transient failures are retried with backoff, then fall through
3. An empty chain raises AIUnavailableError and the helpers degrade gracefully
4. Provider HTTP answers are classified by status code and body
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from aipa.ai.orchestrator import (
    UNAVAILABLE_CHAT_REPLY,
    AIOrchestrator,
    fallback_parse,
    intent_from_model,
)
from aipa.ai.providers import ClaudeProvider, GroqProvider, OllamaProvider
from aipa.errors import AIUnavailableError, ProviderError, RateLimitError, TransientProviderError


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBackendSelection:
    @pytest.mark.asyncio
    async def test_first_available_provider_wins(self, make_provider):
        orch = AIOrchestrator(
            [make_provider("groq", available=False), make_provider("ollama"), make_provider("claude")],
            client=MagicMock(),
        )
        assert await orch.detect_backend() == "ollama"
        health = await orch.health()
        assert health.available is True
        assert health.backend == "ollama"

    @pytest.mark.asyncio
    async def test_no_provider(self, make_provider):
        orch = AIOrchestrator([make_provider("groq", available=False)], client=MagicMock())
        health = await orch.health()
        assert health.available is False
        assert health.backend == "none"

    @pytest.mark.asyncio
    async def test_concurrent_health_checks_detect_once(self, make_provider):
        provider = make_provider("groq")

        async def slow_check():
            await asyncio.sleep(0)
            return True

        provider.is_available = AsyncMock(side_effect=slow_check)
        orch = AIOrchestrator([provider], client=MagicMock())

        results = await asyncio.gather(orch.health(), orch.health(), orch.health())

        assert provider.is_available.await_count == 1
        assert all(h.backend == "groq" for h in results)

    @pytest.mark.asyncio
    async def test_switch_to_unknown_backend(self, make_provider):
        orch = AIOrchestrator([make_provider("groq")], client=MagicMock())
        result = await orch.set_active_backend("mistral")
        assert result.success is False
        assert "Unknown backend" in result.message

    @pytest.mark.asyncio
    async def test_switch_to_unavailable_backend(self, make_provider):
        orch = AIOrchestrator([make_provider("groq"), make_provider("claude", available=False)], client=MagicMock())
        result = await orch.set_active_backend("claude")
        assert result.success is False

    @pytest.mark.asyncio
    async def test_switch_backend(self, make_provider):
        orch = AIOrchestrator([make_provider("groq"), make_provider("claude")], client=MagicMock())
        result = await orch.set_active_backend("claude")
        assert result.success is True
        assert orch.current_backend_info() == {"backend": "claude", "model": "claude-model"}
        assert (await orch.health()).backend == "claude"


class TestComplete:
    @pytest.mark.asyncio
    async def test_rate_limit_falls_to_next_provider(self, make_provider):
        groq = make_provider("groq", [RateLimitError("groq", "429", 429)])
        ollama = make_provider("ollama", ["from ollama"])
        orch = AIOrchestrator([groq, ollama], client=MagicMock(), max_retries=3, backoff_base=0)

        assert await orch.complete("hi") == "from ollama"
        assert groq.calls == 1

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, make_provider):
        groq = make_provider("groq", [TransientProviderError("groq", "503"), TransientProviderError("groq", "timeout"), "ok"])
        orch = AIOrchestrator([groq], client=MagicMock(), max_retries=3, backoff_base=0)

        assert await orch.complete("hi") == "ok"
        assert groq.calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_fall_through(self, make_provider):
        groq = make_provider("groq", [TransientProviderError("groq", "503")] * 3)
        claude = make_provider("claude", ["from claude"])
        orch = AIOrchestrator([groq, claude], client=MagicMock(), max_retries=3, backoff_base=0)

        assert await orch.complete("hi") == "from claude"
        assert groq.calls == 3

    @pytest.mark.asyncio
    async def test_provider_error_not_retried(self, make_provider):
        groq = make_provider("groq", [ProviderError("groq", "HTTP 401", 401)])
        claude = make_provider("claude", ["from claude"])
        orch = AIOrchestrator([groq, claude], client=MagicMock(), max_retries=3, backoff_base=0)

        assert await orch.complete("hi") == "from claude"
        assert groq.calls == 1

    @pytest.mark.asyncio
    async def test_unavailable_providers_are_skipped(self, make_provider):
        groq = make_provider("groq", ["groq"])
        ollama = make_provider("ollama", ["never"], available=False)
        claude = make_provider("claude", ["claude"])
        groq.replies = [RateLimitError("groq", "quota")]
        orch = AIOrchestrator([groq, ollama, claude], client=MagicMock(), backoff_base=0)

        assert await orch.complete("hi") == "claude"
        assert ollama.calls == 0

    @pytest.mark.asyncio
    async def test_empty_chain_raises(self, make_provider):
        orch = AIOrchestrator([make_provider("groq", available=False)], client=MagicMock())
        with pytest.raises(AIUnavailableError):
            await orch.complete("hi")

    @pytest.mark.asyncio
    async def test_all_failing_raises(self, make_provider):
        groq = make_provider("groq", [RateLimitError("groq", "429", 429)])
        claude = make_provider("claude", [ProviderError("claude", "HTTP 400", 400)])
        orch = AIOrchestrator([groq, claude], client=MagicMock(), backoff_base=0)
        with pytest.raises(AIUnavailableError, match="all AI providers failed"):
            await orch.complete("hi")


class TestHelpers:
    @pytest.mark.asyncio
    async def test_parse_intent_from_model_json(self, make_provider):
        reply = (
            'Here: {"parsedIntent": {"propertyType": "Land", "priceMax": "50,000", '
            '"priceIntent": "under", "location": "Porto"}, "responseMessage": "Looking for land"}'
        )
        orch = AIOrchestrator([make_provider("groq", [reply])], client=MagicMock())
        result = await orch.parse_intent("land under 50k near porto")

        assert result.parsed_intent.property_type == "land"
        assert result.parsed_intent.price_max == 50000
        assert result.parsed_intent.price_intent == "under"
        assert result.response_message == "Looking for land"

    @pytest.mark.asyncio
    async def test_parse_intent_falls_back_on_garbage(self, make_provider):
        orch = AIOrchestrator([make_provider("groq", ["I cannot help with that"])], client=MagicMock())
        result = await orch.parse_intent("land under €50k near Porto")
        assert result.parsed_intent.price_max == 50000
        assert result.parsed_intent.location == "Porto"

    @pytest.mark.asyncio
    async def test_parse_intent_without_ai(self, make_provider):
        orch = AIOrchestrator([make_provider("groq", available=False)], client=MagicMock())
        result = await orch.parse_intent("house around 300000 in Faro")
        assert result == fallback_parse("house around 300000 in Faro")

    @pytest.mark.asyncio
    async def test_chat_unavailable(self, make_provider):
        orch = AIOrchestrator([make_provider("groq", available=False)], client=MagicMock())
        assert await orch.chat("hello") == UNAVAILABLE_CHAT_REPLY

    @pytest.mark.asyncio
    async def test_chat_uses_rag_and_stores_conversation(self, make_provider):
        rag = MagicMock()
        rag.build_context = AsyncMock(return_value="=== Relevant Information ===\n\n[IMT]\nTransfer tax")
        rag.store_conversation = AsyncMock()
        groq = make_provider("groq", ["IMT is a transfer tax."])
        orch = AIOrchestrator([groq], client=MagicMock(), rag=rag)

        reply = await orch.chat("what is IMT?", conversation_id="c1")

        assert reply == "IMT is a transfer tax."
        assert "KNOWLEDGE CONTEXT" in groq.prompts[0]
        rag.store_conversation.assert_awaited_once_with("c1", "what is IMT?", reply, None)

    @pytest.mark.asyncio
    async def test_results_response_fallback_text(self, make_provider):
        orch = AIOrchestrator([make_provider("groq", available=False)], client=MagicMock())
        text = await orch.generate_results_response("land", "near-miss", 3, {"min": 1, "max": 2}, [])
        assert text.startswith("No exact matches")

    def test_fallback_parse_message(self):
        result = fallback_parse("land under €50k near Porto")
        assert result.parsed_intent.property_type == "land"
        assert result.response_message == "Searching for land near Porto under €50,000..."

    def test_intent_from_model_requires_parsed_intent(self):
        assert intent_from_model({"responseMessage": "hi"}, "q") is None

    def test_intent_from_model_normalises_unknown_price_intent(self):
        result = intent_from_model({"parsedIntent": {"priceIntent": "cheap", "beds": "3"}}, "q")
        assert result.parsed_intent.price_intent == "none"
        assert result.parsed_intent.beds == 3


class TestProviders:
    @pytest.mark.asyncio
    async def test_groq_success(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer gsk_test"
            return httpx.Response(200, json={"choices": [{"message": {"content": "hello"}}]})

        provider = GroqProvider(_client(handler), api_key="gsk_test")
        assert await provider.complete("hi") == "hello"

    def test_groq_key_format(self):
        assert GroqProvider(MagicMock(), api_key="gsk_abc").configured()
        assert not GroqProvider(MagicMock(), api_key="sk-abc").configured()
        assert not GroqProvider(MagicMock(), api_key="").configured()

    @pytest.mark.asyncio
    async def test_429_is_rate_limit(self):
        provider = GroqProvider(_client(lambda r: httpx.Response(429, text="slow down")), api_key="gsk_test")
        with pytest.raises(RateLimitError):
            await provider.complete("hi")

    @pytest.mark.asyncio
    async def test_quota_text_is_rate_limit(self):
        provider = ClaudeProvider(_client(lambda r: httpx.Response(400, text="monthly quota exceeded")), api_key="key")
        with pytest.raises(RateLimitError):
            await provider.complete("hi")

    @pytest.mark.asyncio
    async def test_5xx_is_transient(self):
        provider = GroqProvider(_client(lambda r: httpx.Response(503, text="unavailable")), api_key="gsk_test")
        with pytest.raises(TransientProviderError):
            await provider.complete("hi")

    @pytest.mark.asyncio
    async def test_connect_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = GroqProvider(_client(handler), api_key="gsk_test")
        with pytest.raises(TransientProviderError):
            await provider.complete("hi")

    @pytest.mark.asyncio
    async def test_4xx_is_plain_provider_error(self):
        provider = GroqProvider(_client(lambda r: httpx.Response(401, text="bad key")), api_key="gsk_test")
        with pytest.raises(ProviderError) as exc:
            await provider.complete("hi")
        assert not isinstance(exc.value, (RateLimitError, TransientProviderError))
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_claude_reads_first_content_block(self):
        provider = ClaudeProvider(
            _client(lambda r: httpx.Response(200, json={"content": [{"type": "text", "text": "bonjour"}]})),
            api_key="key",
        )
        assert await provider.complete("hi", system_prompt="be brief") == "bonjour"

    @pytest.mark.asyncio
    async def test_ollama_models_and_generate(self):
        def handler(request):
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": "llama3:latest"}]})
            return httpx.Response(200, json={"response": "local answer"})

        provider = OllamaProvider(_client(handler), base_url="http://ollama.test", model="llama3")
        models = await provider.list_models()
        assert models == ["llama3:latest"]
        assert provider.has_model(models, "llama3")
        assert not provider.has_model(models, "mistral")
        assert await provider.is_available()
        assert await provider.complete("hi") == "local answer"

    @pytest.mark.asyncio
    async def test_ollama_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = OllamaProvider(_client(handler), base_url="http://ollama.test")
        assert await provider.list_models() == []
        assert await provider.is_available() is False
