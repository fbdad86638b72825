# aipa/utils/http.py
import asyncio, logging, random, time
from typing import Any, Dict, Optional
from urllib.parse import urlparse
import httpx
from aipa import config

log = logging.getLogger(__name__)

HTTP_TIMEOUT_S        = float(config.HTTP_TIMEOUT)
HTTP_MAX_RETRIES      = int(config.HTTP_MAX_RETRIES)
HTTP_BACKOFF_BASE     = float(config.HTTP_BACKOFF_BASE)
HTTP_RATE_GAP_DEFAULT = float(config.HTTP_RATE_GAP_DEFAULT)

_RATE_GAP_BY_HOST = {
    "www.olx.pt":          0.3,
    "olx.pt":              0.3,
    "www.idealista.pt":    2.5,
    "www.imovirtual.com":  2.5,
    "casa.sapo.pt":        2.0,
}

_SOFT_STATUSES = (429, 403, 503)


class Http:
    """Async HTTP client with retry, backoff and a per-host rate gap."""

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_gap: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self._last_hit: Dict[str, float] = {}  # host -> last monotonic time
        self.rate_gap = rate_gap
        self.max_retries = HTTP_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_base = HTTP_BACKOFF_BASE if backoff_base is None else backoff_base

        kwargs: Dict[str, Any] = {}
        if transport is not None:
            kwargs["transport"] = transport
        else:
            kwargs["http2"] = True
            if config.PROXY_URL:
                kwargs["proxy"] = config.PROXY_URL

        self.cookies = httpx.Cookies()
        self.client = httpx.AsyncClient(
            timeout=HTTP_TIMEOUT_S,
            follow_redirects=True,
            headers={
                "User-Agent": config.USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
                "Accept-Language": "pt-PT,pt;q=0.9,en;q=0.8",
                "Cache-Control": "no-cache",
            },
            cookies=self.cookies,
            **kwargs,
        )

    def _gap_for(self, host: str) -> float:
        if self.rate_gap is not None:
            return self.rate_gap
        return _RATE_GAP_BY_HOST.get(host, HTTP_RATE_GAP_DEFAULT)

    async def _respect_rate_gap(self, host: str):
        gap = self._gap_for(host)
        now = time.monotonic()
        last = self._last_hit.get(host, 0.0)
        wait = (last + gap) - now
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_hit[host] = time.monotonic()

    def _backoff(self, attempt: int) -> float:
        if self.backoff_base <= 0:
            return 0.0
        return (self.backoff_base ** attempt) + random.uniform(0, 0.5)

    async def _get(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        referer: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        host = urlparse(url).netloc.lower()
        await self._respect_rate_gap(host)

        headers = {}
        if referer:
            headers["Referer"] = referer
        request_timeout = timeout if timeout is not None else HTTP_TIMEOUT_S

        retries = self.max_retries if max_retries is None else max_retries
        attempt = 0
        last_exc: Optional[Exception] = None

        while attempt <= retries:
            try:
                r = await self.client.get(url, params=params, headers=headers, timeout=request_timeout)

                # 429/403/503 -> back off and retry
                if r.status_code in _SOFT_STATUSES:
                    ra = r.headers.get("Retry-After")
                    sleep_s = float(ra) if (ra and ra.isdigit()) else self._backoff(attempt)
                    log.warning("[HTTP] %s -> %s, retry in %.1fs (attempt %d)", host, r.status_code, sleep_s, attempt + 1)
                    last_exc = httpx.HTTPStatusError(f"{r.status_code} from {host}", request=r.request, response=r)
                    await asyncio.sleep(sleep_s)
                    attempt += 1
                    continue

                r.raise_for_status()
                return r

            except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.RemoteProtocolError) as e:
                last_exc = e
                log.warning("[HTTP] %s %s, attempt %d", host, type(e).__name__, attempt + 1)
                await asyncio.sleep(self._backoff(attempt))
                attempt += 1
                continue

        raise last_exc or RuntimeError("Upstream failed after retries")

    async def get_text(self, url: str, *, max_retries: Optional[int] = None, referer: Optional[str] = None) -> str:
        r = await self._get(url, referer=referer, max_retries=max_retries)
        return r.text

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        r = await self._get(url, params=params, timeout=timeout, max_retries=max_retries)
        return r.json()

    async def close(self):
        await self.client.aclose()
