"""Retrieval over the knowledge, listings and conversations collections."""
import logging
import math
import re
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from aipa.rag.embeddings import EmbeddingService
from aipa.rag.knowledge import get_all_knowledge
from aipa.rag.vector_store import VectorStore
from aipa.schemas import Document, DocumentMatch, Listing, ListingSearchCriteria, RAGStats

log = logging.getLogger(__name__)

KNOWLEDGE_COLLECTION = "knowledge"
LISTINGS_COLLECTION = "listings"
CONVERSATIONS_COLLECTION = "conversations"
COLLECTIONS = (KNOWLEDGE_COLLECTION, LISTINGS_COLLECTION, CONVERSATIONS_COLLECTION)

CHARS_PER_TOKEN = 4

CRITERIA_CITIES = ["porto", "lisboa", "lisbon", "faro", "braga", "coimbra", "aveiro", "setubal", "evora"]
BEDS_RE = re.compile(r"(\d+)\s*(?:bed(?:room)?s?|quartos?)\b|\bt(\d+)\b")
AREA_RE = re.compile(r"(\d+)\s*(?:m2|sqm|m²|square|metros)")
CRITERIA_PRICE_RE = re.compile(r"(?:€|eur|euro|price|under|below|max)\s*(\d+(?:[.,]\d{3})*)")

_TYPE_WORDS = {
    "apartment": ("apartamento", "apartment"),
    "house": ("moradia", "house", "vivenda", "villa"),
    "land": ("terreno", "land", "lote"),
    "room": ("quarto", "room"),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def listing_text(listing: Listing) -> str:
    parts = [
        listing.title,
        f"Price: €{listing.price_eur:g}",
        f"Location: {listing.city}" if listing.city else "",
        f"Bedrooms: {listing.beds}" if listing.beds else "",
        f"Bathrooms: {listing.baths}" if listing.baths else "",
        f"Area: {listing.area_sqm:g} sqm" if listing.area_sqm else "",
        listing.description or "",
    ]
    return ". ".join(p for p in parts if p)


def parse_search_query(query: str) -> ListingSearchCriteria:
    """Keyword extraction of hard filters (city, beds, area, price, rent/sale, type)."""
    lower = query.lower()
    criteria = ListingSearchCriteria()

    for city in CRITERIA_CITIES:
        if city in lower:
            criteria.city = city
            break

    m = BEDS_RE.search(lower)
    if m:
        beds = int(m.group(1) or m.group(2))
        if 0 < beds < 10:
            criteria.min_beds = criteria.max_beds = beds

    m = AREA_RE.search(lower)
    if m:
        area = int(m.group(1))
        if 10 < area < 10000:
            criteria.min_area = area * 0.8
            criteria.max_area = area * 1.5

    m = CRITERIA_PRICE_RE.search(lower)
    if m:
        price = int(re.sub(r"[.,]", "", m.group(1)))
        if price > 0:
            criteria.max_price = price

    if any(w in lower for w in ("rent", "arrend", "alug")):
        criteria.for_rent = True
    elif any(w in lower for w in ("buy", "sale", "comprar", "vend")):
        criteria.for_rent = False

    if any(w in lower for w in ("apartment", "apartamento", "flat")):
        criteria.property_type = "apartment"
    elif any(w in lower for w in ("house", "moradia", "villa", "vivenda")):
        criteria.property_type = "house"
    elif any(w in lower for w in ("land", "terreno", "plot")):
        criteria.property_type = "land"
    elif any(w in lower for w in ("room", "quarto")):
        criteria.property_type = "room"

    return criteria


def score_against_criteria(doc: Document, criteria: ListingSearchCriteria) -> Optional[float]:
    """Score an indexed listing out of 100, or None when a hard filter excludes it."""
    meta = doc.metadata
    content = doc.content.lower()
    title = str(meta.get("title") or "").lower()
    score = 100.0

    if criteria.city:
        city = str(meta.get("city") or "").lower()
        wanted = criteria.city.lower()
        if wanted not in city and city not in wanted:
            return None

    beds = meta.get("beds")
    if criteria.min_beds is not None and (beds is None or beds < criteria.min_beds):
        return None
    if criteria.max_beds is not None and beds is not None and beds > criteria.max_beds:
        return None

    area = meta.get("areaSqm")
    if criteria.min_area is not None:
        if area is None:
            score -= 20
        elif area < criteria.min_area * 0.8:
            return None
        elif area < criteria.min_area:
            score -= 10
    if criteria.max_area is not None and area is not None and area > criteria.max_area * 1.2:
        return None

    price = meta.get("priceEur")
    if criteria.min_price is not None and price is not None and price < criteria.min_price:
        return None
    if criteria.max_price is not None and price is not None and price > criteria.max_price:
        return None

    if criteria.for_rent is not None:
        text = content + " " + title
        is_rent = any(w in text for w in ("arrend", "rent", "alug"))
        is_sale = any(w in text for w in ("vend", "sale"))
        if criteria.for_rent and not is_rent and is_sale:
            return None
        if not criteria.for_rent and not is_sale and is_rent:
            return None

    if criteria.property_type:
        kind = criteria.property_type.lower()
        matches = any(w in content for w in _TYPE_WORDS.get(kind, ()))
        if kind == "apartment" and not matches:
            matches = any(t in title for t in ("t1", "t2", "t3", "t4"))
        if not matches:
            score -= 30

    if criteria.min_area and area and 0.9 <= area / criteria.min_area <= 1.2:
        score += 20

    return score if score > 0 else None


class RAGService:
    def __init__(self, store: Optional[VectorStore] = None, embeddings: Optional[EmbeddingService] = None):
        self.store = store or VectorStore()
        self.embeddings = embeddings or EmbeddingService()

    async def initialize(self) -> int:
        """Index the seed knowledge unless the stored collection already has every document."""
        knowledge = get_all_knowledge()
        if self.store.get_stats().get(KNOWLEDGE_COLLECTION) == len(knowledge):
            log.info("[RAG] knowledge base already indexed")
            return 0

        log.info("[RAG] indexing knowledge base")
        vectors = await self.embeddings.embed_many([f"{k.title}\n{k.content}" for k in knowledge])
        documents = [
            Document(
                id=k.id,
                content=k.content,
                metadata={"title": k.title, "category": k.category, "tags": k.tags},
                embedding=vector,
            )
            for k, vector in zip(knowledge, vectors)
        ]
        self.store.add_documents(KNOWLEDGE_COLLECTION, documents)
        log.info("[RAG] indexed %d knowledge documents", len(documents))
        return len(documents)

    async def index_listings(self, listings: Sequence[Listing]) -> int:
        if not listings:
            return 0
        texts = [listing_text(l) for l in listings]
        vectors = await self.embeddings.embed_many(texts)
        indexed_at = _now_iso()
        documents = [
            Document(
                id=l.id,
                content=text,
                metadata={
                    "title": l.title,
                    "priceEur": l.price_eur,
                    "city": l.city,
                    "sourceSite": l.source_site,
                    "sourceUrl": l.source_url,
                    "beds": l.beds,
                    "baths": l.baths,
                    "areaSqm": l.area_sqm,
                    "indexedAt": indexed_at,
                },
                embedding=vector,
            )
            for l, text, vector in zip(listings, texts, vectors)
        ]
        self.store.add_documents(LISTINGS_COLLECTION, documents)
        log.info("[RAG] indexed %d listings", len(documents))
        return len(documents)

    async def store_conversation(
        self,
        conversation_id: str,
        user_query: str,
        assistant_response: str,
        search_context: Optional[str] = None,
    ) -> Document:
        lines = [f"User: {user_query}", f"Assistant: {assistant_response}"]
        if search_context:
            lines.append(f"Context: {search_context}")
        content = "\n".join(lines)
        document = Document(
            id=f"conv-{conversation_id}-{int(time.time() * 1000)}",
            content=content,
            metadata={"conversationId": conversation_id, "userQuery": user_query, "timestamp": _now_iso()},
            embedding=await self.embeddings.embed(content),
        )
        self.store.add_documents(CONVERSATIONS_COLLECTION, [document])
        return document

    async def retrieve_knowledge(self, query: str, top_k: int = 3, min_score: float = 0.3) -> List[DocumentMatch]:
        return self.store.search(KNOWLEDGE_COLLECTION, await self.embeddings.embed(query), top_k, min_score)

    async def retrieve_similar_listings(self, query: str, top_k: int = 5, min_score: float = 0.3) -> List[DocumentMatch]:
        return self.store.search(LISTINGS_COLLECTION, await self.embeddings.embed(query), top_k, min_score)

    async def retrieve_conversation_context(
        self, query: str, conversation_id: Optional[str] = None, top_k: int = 3
    ) -> List[DocumentMatch]:
        matches = self.store.search(CONVERSATIONS_COLLECTION, await self.embeddings.embed(query), top_k * 2, 0.2)
        if conversation_id:
            matches = [m for m in matches if m.document.metadata.get("conversationId") == conversation_id]
        return matches[:top_k]

    def search_listings_by_criteria(self, criteria: ListingSearchCriteria, limit: int = 10) -> List[Tuple[Document, float]]:
        scored = []
        for doc in self.store.get_collection(LISTINGS_COLLECTION):
            score = score_against_criteria(doc, criteria)
            if score is not None:
                scored.append((doc, score))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    async def build_context(
        self,
        query: str,
        include_knowledge: bool = True,
        include_listings: bool = False,
        include_conversations: bool = False,
        conversation_id: Optional[str] = None,
        max_tokens: int = 2000,
    ) -> str:
        parts: List[str] = []
        used = 0

        def fits(text: str) -> bool:
            nonlocal used
            tokens = math.ceil(len(text) / CHARS_PER_TOKEN)
            if used + tokens < max_tokens:
                used += tokens
                return True
            return False

        if include_knowledge:
            matches = await self.retrieve_knowledge(query, 3, 0.2)
            if matches:
                parts.append("=== Relevant Information ===")
                for m in matches:
                    text = f"[{m.document.metadata.get('title')}]\n{m.document.content}"
                    if fits(text):
                        parts.append(text)

        if include_listings:
            matches = await self.retrieve_similar_listings(query, 3, 0.3)
            if matches:
                parts.append("\n=== Similar Properties ===")
                for m in matches:
                    meta = m.document.metadata
                    text = f"- {meta.get('title')}: €{meta.get('priceEur')} in {meta.get('city') or 'Portugal'}"
                    if fits(text):
                        parts.append(text)

        if include_conversations:
            matches = await self.retrieve_conversation_context(query, conversation_id, 2)
            if matches:
                parts.append("\n=== Previous Relevant Conversations ===")
                for m in matches:
                    if fits(m.document.content):
                        parts.append(m.document.content)

        return "\n\n".join(parts)

    def get_stats(self) -> RAGStats:
        return RAGStats(
            collections=self.store.get_stats(),
            embedding_backend=self.embeddings.backend,
            embedding_dimension=self.embeddings.dimension,
        )

    def clear(self, collection: Optional[str] = None) -> None:
        for name in [collection] if collection else COLLECTIONS:
            self.store.clear_collection(name)
        log.info("[RAG] cleared %s", collection or "all collections")

    async def close(self):
        await self.embeddings.close()
