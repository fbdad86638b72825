import os
from dotenv import load_dotenv

load_dotenv()


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# ---- Outbound HTTP (listing sources) -----------------------------------------
USER_AGENT = os.getenv("USER_AGENT", "Mozilla/5.0 (compatible; AIPA/1.0)")
HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "15"))
HTTP_MAX_RETRIES = int(os.getenv("HTTP_MAX_RETRIES", "3"))
HTTP_BACKOFF_BASE = float(os.getenv("HTTP_BACKOFF_BASE", "1.8"))
HTTP_RATE_GAP_DEFAULT = float(os.getenv("HTTP_RATE_GAP_DEFAULT", "0.3"))
PROXY_URL = os.getenv("PROXY_URL", "")

# ---- Sources ------------------------------------------------------------------
MOCK_DATA = _bool("MOCK_DATA", False)
PORTAL_SEARCH_ENABLED = _bool("PORTAL_SEARCH_ENABLED", False)
DDG_REGION = os.getenv("DDG_REGION", "pt-pt")
MAX_RESULTS = int(os.getenv("MAX_RESULTS", "6"))
SEARCH_RETRIES = int(os.getenv("SEARCH_RETRIES", "4"))
SEARCH_BACKOFF_BASE = float(os.getenv("SEARCH_BACKOFF_BASE", "1.6"))

OLX_MAX_LISTINGS = int(os.getenv("OLX_MAX_LISTINGS", "200"))
OLX_MAX_PAGES = int(os.getenv("OLX_MAX_PAGES", "5"))
OLX_PAGE_DELAY = float(os.getenv("OLX_PAGE_DELAY", "0.3"))
# 1 = sequential fan-out (adapters share rate-limited upstreams)
ADAPTER_CONCURRENCY = int(os.getenv("ADAPTER_CONCURRENCY", "1"))

# ---- Language model providers -------------------------------------------------
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
GROQ_URL = os.getenv("GROQ_URL", "https://api.groq.com/openai/v1/chat/completions")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")
CLAUDE_URL = os.getenv("CLAUDE_URL", "https://api.anthropic.com/v1/messages")
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.3-thinking-claude")

AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "40"))
AI_PROBE_TIMEOUT = float(os.getenv("AI_PROBE_TIMEOUT", "2"))
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "3"))
AI_BACKOFF_BASE = float(os.getenv("AI_BACKOFF_BASE", "1.0"))

# ---- Relevance ranking ----------------------------------------------------------
AI_ANALYSIS_ENABLED = _bool("AI_ANALYSIS_ENABLED", True)
AI_ANALYSIS_BATCH_SIZE = int(os.getenv("AI_ANALYSIS_BATCH_SIZE", "8"))
AI_ANALYSIS_MAX_LISTINGS = int(os.getenv("AI_ANALYSIS_MAX_LISTINGS", "100"))
AI_ANALYSIS_TIMEOUT = float(os.getenv("AI_ANALYSIS_TIMEOUT", "45"))
AI_ANALYSIS_DETAIL_THRESHOLD = int(os.getenv("AI_ANALYSIS_DETAIL_THRESHOLD", "20"))

# ---- Embeddings / RAG -----------------------------------------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_URL = os.getenv("EMBEDDING_URL", "https://api.openai.com/v1/embeddings")
DATA_DIR = os.path.abspath(os.getenv("DATA_DIR", "data"))
RAG_STORE_NAME = os.getenv("RAG_STORE_NAME", "property-assistant")
INDEX_SEARCH_RESULTS = _bool("INDEX_SEARCH_RESULTS", False)

# ---- Currency -------------------------------------------------------------------
FX_RATE_USD_EUR = float(os.getenv("FX_RATE_USD_EUR", "0.92"))
FX_RATE_GBP_EUR = float(os.getenv("FX_RATE_GBP_EUR", "1.17"))

# ---- Match rules ----------------------------------------------------------------
EXACT_TOLERANCE_PERCENT = float(os.getenv("EXACT_TOLERANCE_PERCENT", "0.02"))
EXACT_TOLERANCE_ABSOLUTE_EUR = float(os.getenv("EXACT_TOLERANCE_ABSOLUTE_EUR", "50"))
NEAR_MISS_TOLERANCE_PERCENT = float(os.getenv("NEAR_MISS_TOLERANCE_PERCENT", "0.1"))
NEAR_MISS_TOLERANCE_ABSOLUTE_EUR = float(os.getenv("NEAR_MISS_TOLERANCE_ABSOLUTE_EUR", "200"))
# Geo filtering is effectively off: users search Portugal from anywhere
STRICT_RADIUS_KM = float(os.getenv("STRICT_RADIUS_KM", "99999"))
NEAR_MISS_RADIUS_KM = float(os.getenv("NEAR_MISS_RADIUS_KM", "99999"))

# ---- Search result cache --------------------------------------------------------
SEARCH_CACHE_MAX = int(os.getenv("SEARCH_CACHE_MAX", "500"))
SEARCH_CACHE_TTL_S = float(os.getenv("SEARCH_CACHE_TTL_S", str(6 * 60 * 60)))
