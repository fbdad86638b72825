"""Language-model backends. Each one turns (prompt, system prompt, history) into text.

Failures are classified so the orchestrator can decide what to do:
``TransientProviderError`` (timeouts, refused/reset connections, 5xx) is
retried, ``RateLimitError`` (429 or quota text) moves on to the next
provider, and a plain ``ProviderError`` (bad key, 4xx) is not retried.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from aipa import config
from aipa.errors import ProviderError, RateLimitError, TransientProviderError
from aipa.schemas import AIMessage

log = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
_RATE_LIMIT_TEXT = re.compile(r"rate.?limit|quota|too many requests", re.I)


def _check(provider: str, r: httpx.Response) -> None:
    if r.is_success:
        return
    body = r.text[:300]
    if r.status_code == 429 or _RATE_LIMIT_TEXT.search(body):
        raise RateLimitError(provider, f"rate limited: {body}", r.status_code)
    if r.status_code >= 500:
        raise TransientProviderError(provider, f"upstream {r.status_code}: {body}", r.status_code)
    raise ProviderError(provider, f"HTTP {r.status_code}: {body}", r.status_code)


def _json(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


class Provider:
    id: str = ""
    name: str = ""
    is_cloud: bool = True

    def __init__(self, client: httpx.AsyncClient, model: str, timeout: float = config.AI_TIMEOUT):
        self.client = client
        self.model = model
        self.timeout = timeout

    def configured(self) -> bool:
        raise NotImplementedError

    async def list_models(self) -> List[str]:
        return [self.model] if self.configured() else []

    async def is_available(self) -> bool:
        return self.configured()

    async def _post(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            r = await self.client.post(url, json=payload, headers=headers, timeout=self.timeout)
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransientProviderError(self.id, f"{type(e).__name__}: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.id, str(e)) from e
        _check(self.id, r)
        return r

    async def complete(self, prompt: str, system_prompt: Optional[str] = None, history: Sequence[AIMessage] = ()) -> str:
        raise NotImplementedError


class GroqProvider(Provider):
    id = "groq"
    name = "Groq Cloud"
    is_cloud = True

    def __init__(self, client: httpx.AsyncClient, api_key: str = config.GROQ_API_KEY, model: str = config.GROQ_MODEL,
                 url: str = config.GROQ_URL, timeout: float = config.AI_TIMEOUT):
        super().__init__(client, model, timeout)
        self.api_key = api_key
        self.url = url

    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key.startswith("gsk_")

    async def complete(self, prompt, system_prompt=None, history=()):
        messages = [{"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT}]
        messages += [{"role": m.role, "content": m.content} for m in history]
        messages.append({"role": "user", "content": prompt})
        r = await self._post(
            self.url,
            {"model": self.model, "messages": messages, "temperature": 0.7, "max_tokens": 4096},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        data = _json(r) or {}
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


class ClaudeProvider(Provider):
    id = "claude"
    name = "Claude (Anthropic)"
    is_cloud = True

    def __init__(self, client: httpx.AsyncClient, api_key: str = config.ANTHROPIC_API_KEY, model: str = config.CLAUDE_MODEL,
                 url: str = config.CLAUDE_URL, timeout: float = config.AI_TIMEOUT):
        super().__init__(client, model, timeout)
        self.api_key = api_key
        self.url = url

    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt, system_prompt=None, history=()):
        # system turns go in the top-level field, not the message list
        messages = [{"role": m.role, "content": m.content} for m in history if m.role != "system"]
        messages.append({"role": "user", "content": prompt})
        r = await self._post(
            self.url,
            {"model": self.model, "max_tokens": 4096, "system": system_prompt or DEFAULT_SYSTEM_PROMPT, "messages": messages},
            headers={"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
        )
        data = _json(r) or {}
        try:
            return data["content"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


class OllamaProvider(Provider):
    id = "ollama"
    name = "Ollama (Local)"
    is_cloud = False

    def __init__(self, client: httpx.AsyncClient, base_url: str = config.OLLAMA_URL, model: str = config.OLLAMA_MODEL,
                 timeout: float = config.AI_TIMEOUT, probe_timeout: float = config.AI_PROBE_TIMEOUT):
        super().__init__(client, model, timeout)
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout

    def configured(self) -> bool:
        return bool(self.base_url)

    async def list_models(self) -> List[str]:
        try:
            r = await self.client.get(f"{self.base_url}/api/tags", timeout=self.probe_timeout)
        except httpx.HTTPError as e:
            log.debug("[AI] ollama probe failed: %s", e)
            return []
        if not r.is_success:
            return []
        data = _json(r) or {}
        return [m["name"] for m in data.get("models") or [] if isinstance(m, dict) and m.get("name")]

    async def is_available(self) -> bool:
        return bool(await self.list_models())

    def has_model(self, models: Sequence[str], wanted: str) -> bool:
        if wanted in models:
            return True
        tagged = wanted if ":" in wanted else f"{wanted}:latest"
        return any(m == tagged or m.startswith(wanted) for m in models)

    async def complete(self, prompt, system_prompt=None, history=()):
        text = prompt
        if history:
            lines = "\n".join(f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in history)
            text = f"Previous conversation:\n{lines}\n\nUser: {prompt}"
        payload = {"model": self.model, "prompt": text, "stream": False}
        if system_prompt:
            payload["system"] = system_prompt
        r = await self._post(f"{self.base_url}/api/generate", payload)
        data = _json(r)
        if not isinstance(data, dict):
            return ""
        return data.get("response") or ""


def default_providers(client: httpx.AsyncClient) -> List[Provider]:
    """Priority order: fast cloud, local, secondary cloud."""
    return [GroqProvider(client), OllamaProvider(client), ClaudeProvider(client)]
