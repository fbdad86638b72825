import asyncio
import logging
import math
import re
from typing import List, Optional, Sequence

import httpx

from aipa import config

log = logging.getLogger(__name__)

# Fixed domain vocabulary for the offline vectors. Order matters: earlier terms weigh more.
PROPERTY_VOCABULARY = [
    "land", "plot", "house", "villa", "apartment", "farm", "quinta", "commercial", "rural", "urban",
    "bedroom", "bathroom", "kitchen", "pool", "garden", "garage", "terrace", "balcony", "view", "sea",
    "portugal", "lisbon", "porto", "algarve", "alentejo", "coimbra", "braga", "faro", "cascais", "sintra",
    "central", "north", "south", "coast", "beach", "mountain", "countryside", "city", "town", "village",
    "cheap", "affordable", "expensive", "luxury", "budget", "small", "large", "spacious", "sqm", "hectare",
    "new", "renovated", "restored", "ruin", "construction", "modern", "traditional", "old",
    "water", "electricity", "road", "access", "internet", "heating", "cooling", "furnished",
    "buy", "rent", "invest", "sale", "price", "cost", "value",
    "tax", "imt", "notary", "lawyer", "contract", "deed", "registration", "nif", "visa", "golden",
]

BATCH_SIZE = 10
BATCH_DELAY_S = 0.1
_NON_ALPHA = re.compile(r"[^a-z]")


def tfidf_embedding(text: str) -> List[float]:
    """Deterministic vocabulary-weighted vector, L2-normalised (all zeros when nothing matches)."""
    words = text.lower().split()
    counts = {}
    for word in words:
        clean = _NON_ALPHA.sub("", word)
        if len(clean) > 2:
            counts[clean] = counts.get(clean, 0) + 1

    size = len(PROPERTY_VOCABULARY)
    vector = []
    for i, term in enumerate(PROPERTY_VOCABULARY):
        count = counts.get(term, 0)
        partial = sum(n * 0.5 for word, n in counts.items() if term in word or word in term)
        tf = (count + partial) / max(len(words), 1)
        vector.append(tf * math.log(size / (i + 1)))

    norm = math.sqrt(sum(v * v for v in vector))
    if norm > 0:
        vector = [v / norm for v in vector]
    return vector


class EmbeddingService:
    def __init__(
        self,
        api_key: str = config.OPENAI_API_KEY,
        model: str = config.EMBEDDING_MODEL,
        url: str = config.EMBEDDING_URL,
        client: Optional[httpx.AsyncClient] = None,
        batch_delay: float = BATCH_DELAY_S,
    ):
        self.api_key = api_key
        self.model = model
        self.url = url
        self._client = client
        self.batch_delay = batch_delay

    @property
    def backend(self) -> str:
        return "openai" if self.api_key.startswith("sk-") else "tfidf"

    @property
    def dimension(self) -> int:
        return 1536 if self.backend == "openai" else len(PROPERTY_VOCABULARY)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=config.AI_TIMEOUT)
        return self._client

    async def _api_embedding(self, text: str) -> List[float]:
        r = await self.client.post(
            self.url,
            json={"model": self.model, "input": text[:8000]},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        r.raise_for_status()
        data = r.json().get("data") or []
        embedding = data[0].get("embedding") if data else None
        if not embedding:
            raise ValueError("embedding response carried no vector")
        return embedding

    async def embed(self, text: str) -> List[float]:
        if self.backend == "tfidf":
            return tfidf_embedding(text)
        try:
            return await self._api_embedding(text)
        except (httpx.HTTPError, ValueError) as e:
            log.error("[Embeddings] API failed, falling back to TF-IDF: %s", e)
            return tfidf_embedding(text)

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        if self.backend == "tfidf":
            return [tfidf_embedding(t) for t in texts]
        out: List[List[float]] = []
        for i in range(0, len(texts), BATCH_SIZE):
            out += await asyncio.gather(*(self.embed(t) for t in texts[i:i + BATCH_SIZE]))
            if i + BATCH_SIZE < len(texts) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
        return out

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
