import logging, re, time, random
from typing import Dict, List, Optional, Pattern
import httpx
from bs4 import BeautifulSoup
from urllib.parse import urljoin, urlparse, parse_qs, unquote
from duckduckgo_search import DDGS
from duckduckgo_search.exceptions import RatelimitException
from aipa import config

log = logging.getLogger(__name__)

# Listing detail pages only, never search/result pages
PORTAL_URL_PATTERNS: Dict[str, Pattern] = {
    "idealista":  re.compile(r"https?://(www\.)?idealista\.pt/imovel/\d+", re.I),
    "imovirtual": re.compile(r"https?://(www\.)?imovirtual\.com/(pt/)?anuncio/[^\s?#]+", re.I),
    "casasapo":   re.compile(r"https?://casa\.sapo\.pt/[^\s?#]+/[^\s?#]*\d{4,}[^\s?#]*", re.I),
    "supercasa":  re.compile(r"https?://(www\.)?supercasa\.pt/[^\s?#]+/i\d+", re.I),
}
PORTAL_DOMAINS = {
    "idealista":  "idealista.pt",
    "imovirtual": "imovirtual.com",
    "casasapo":   "casa.sapo.pt",
    "supercasa":  "supercasa.pt",
}

PROPERTY_WORDS = {
    "land":      "terreno",
    "apartment": "apartamento",
    "house":     "moradia",
    "room":      "quarto",
}

SEARCH_RETRIES = config.SEARCH_RETRIES
BACKOFF_BASE   = config.SEARCH_BACKOFF_BASE


def _normalize_ddg_href(href: str) -> str:
    if not href:
        return ""
    if href.startswith("/"):
        href = urljoin("https://duckduckgo.com", href)

    u = urlparse(href)
    # /l/?uddg=<encoded_target>
    if u.netloc.endswith("duckduckgo.com") and u.path.startswith("/l/"):
        qs = parse_qs(u.query)
        if "uddg" in qs:
            return unquote(qs["uddg"][0])
    return href


def _ddg_html_fallback(query: str, max_results: int) -> List[str]:
    """Scrape the DuckDuckGo HTML endpoints when the API client is rate limited."""
    candidates = [
        "https://html.duckduckgo.com/html/",
        "https://duckduckgo.com/html/",
        "https://lite.duckduckgo.com/lite/",
    ]
    proxy = config.PROXY_URL or None

    for base in candidates:
        try:
            with httpx.Client(
                timeout=20,
                headers={"User-Agent": config.USER_AGENT},
                follow_redirects=True,
                proxy=proxy,
            ) as c:
                r = c.get(base, params={"q": query, "kl": (config.DDG_REGION or "wt-wt")})
                r.raise_for_status()
                soup = BeautifulSoup(r.text, "lxml")

                urls: List[str] = []
                for a in soup.select("a.result__a[href], a.result__url[href], a.result-link[href]"):
                    href = _normalize_ddg_href(a.get("href", "").strip())
                    if href:
                        urls.append(href)
                        if len(urls) >= max_results:
                            break
                log.info("[DDG-HTML] %s ok: %s -> %d urls", base, query, len(urls))
                if urls:
                    return urls
        except httpx.HTTPError as e:
            log.warning("[DDG-HTML] %s error: %s -> %s", base, query, e)
    return []


def ddg_text(query: str, max_results: int) -> List[str]:
    attempt = 0
    while True:
        try:
            urls: List[str] = []
            with DDGS() as ddgs:
                for r in ddgs.text(
                    query,
                    region=(config.DDG_REGION or "wt-wt"),
                    safesearch="off",
                    timelimit=None,
                    max_results=max_results * 5,
                ):
                    href = _normalize_ddg_href((r.get("href") or r.get("link") or "").strip())
                    if href:
                        urls.append(href)
                        if len(urls) >= max_results * 5:
                            break
            log.info("[DDG] ok: %s -> %d urls", query, len(urls))
            return urls
        except RatelimitException:
            if attempt >= SEARCH_RETRIES:
                log.warning("[DDG] 429, falling back to HTML: %s", query)
                return _ddg_html_fallback(query, max_results * 5)
            time.sleep((BACKOFF_BASE ** attempt) + random.uniform(0, 0.5))
            attempt += 1
        except Exception as e:
            log.warning("[DDG] error: %s -> %s, falling back to HTML", query, e)
            return _ddg_html_fallback(query, max_results * 5)


def _dedupe(seq: List[str]) -> List[str]:
    seen, out = set(), []
    for x in seq:
        if x not in seen:
            seen.add(x); out.append(x)
    return out


def build_queries(property_type: Optional[str], location: Optional[str], listing_type: Optional[str] = None) -> List[str]:
    """Portuguese and English phrasings of the request, most specific first."""
    word = PROPERTY_WORDS.get((property_type or "").lower(), "imóvel")
    deal = "arrendar" if listing_type == "rent" else "venda"
    place = (location or "").strip()
    outs = [f"{word} {deal} {place}".strip(), f"{word} {place}".strip()]
    if property_type:
        outs.append(f"{property_type} for {'rent' if listing_type == 'rent' else 'sale'} {place}".strip())
    return _dedupe([q for q in outs if q])


def discover_listing_urls(
    property_type: Optional[str],
    location: Optional[str],
    listing_type: Optional[str] = None,
    max_results: Optional[int] = None,
    portals: Optional[List[str]] = None,
) -> Dict[str, List[str]]:
    max_results = max_results or config.MAX_RESULTS
    portals = portals or list(PORTAL_DOMAINS)
    found: Dict[str, List[str]] = {p: [] for p in portals}

    for q in build_queries(property_type, location, listing_type):
        for portal in portals:
            if len(found[portal]) >= max_results:
                continue
            pattern = PORTAL_URL_PATTERNS[portal]
            for href in ddg_text(f"{q} site:{PORTAL_DOMAINS[portal]}", max_results):
                if pattern.match(href):
                    found[portal].append(href)
                    if len(found[portal]) >= max_results:
                        break
            time.sleep(0.6)
        if all(len(v) >= max_results for v in found.values()):
            break

    return {p: _dedupe(v)[:max_results] for p, v in found.items()}


def portal_for_url(url: str) -> Optional[str]:
    host = urlparse(url).netloc.lower()
    for portal, domain in PORTAL_DOMAINS.items():
        if host == domain or host.endswith("." + domain):
            return portal
    return None
