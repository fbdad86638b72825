"""In-memory vector store with named collections, persisted to one JSON file."""
import json
import logging
import math
import os
import tempfile
from typing import Dict, List, Optional, Sequence

from aipa import config
from aipa.schemas import Document, DocumentMatch

log = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    magnitude = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 0.0 if magnitude == 0 else dot / magnitude


class VectorStore:
    def __init__(self, store_name: str = config.RAG_STORE_NAME, data_dir: Optional[str] = None):
        self.data_dir = data_dir or os.path.join(config.DATA_DIR, "rag")
        self.path = os.path.join(self.data_dir, f"{store_name}.json")
        self.collections: Dict[str, List[Document]] = {}
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            log.error("[VectorStore] could not load %s, starting empty: %s", self.path, e)
            return
        self.collections = {
            name: [Document.model_validate(d) for d in docs] for name, docs in raw.items() if isinstance(docs, list)
        }
        log.info("[VectorStore] loaded %d collections from %s", len(self.collections), self.path)

    def _save(self) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        payload = {name: [d.model_dump() for d in docs] for name, docs in self.collections.items()}
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".vectorstore-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get_collection(self, name: str) -> List[Document]:
        return self.collections.setdefault(name, [])

    def add_documents(self, collection_name: str, documents: Sequence[Document]) -> None:
        """Upsert by id: an existing document is replaced in place."""
        collection = self.get_collection(collection_name)
        index = {d.id: i for i, d in enumerate(collection)}
        for doc in documents:
            if doc.id in index:
                collection[index[doc.id]] = doc
            else:
                index[doc.id] = len(collection)
                collection.append(doc)
        self._save()
        log.info("[VectorStore] upserted %d documents into %s", len(documents), collection_name)

    def search(self, collection_name: str, query_embedding: Sequence[float], top_k: int = 5, min_score: float = 0.5) -> List[DocumentMatch]:
        matches = [
            DocumentMatch(document=d, score=cosine_similarity(query_embedding, d.embedding))
            for d in self.get_collection(collection_name)
            if d.embedding
        ]
        matches = [m for m in matches if m.score >= min_score]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    def search_by_keywords(self, collection_name: str, query: str, top_k: int = 5) -> List[DocumentMatch]:
        """Term-frequency match over content and metadata, for documents without embeddings."""
        terms = query.lower().split()
        if not terms:
            return []
        matches = []
        for d in self.get_collection(collection_name):
            text = d.content.lower() + " " + json.dumps(d.metadata, ensure_ascii=False).lower()
            hits = sum(text.count(term) for term in terms)
            if hits:
                matches.append(DocumentMatch(document=d, score=hits / len(terms)))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    def delete_documents(self, collection_name: str, document_ids: Sequence[str]) -> None:
        drop = set(document_ids)
        self.collections[collection_name] = [d for d in self.get_collection(collection_name) if d.id not in drop]
        self._save()

    def get_stats(self) -> Dict[str, int]:
        return {name: len(docs) for name, docs in self.collections.items()}

    def clear_collection(self, collection_name: str) -> None:
        self.collections[collection_name] = []
        self._save()
