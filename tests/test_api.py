"""
HTTP API tests
==============

Tests for main.py, run against mock listings with AI switched off.
The lifespan is not started, so nothing is indexed or probed on startup.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import main
from aipa.adapters.mock import MockAdapter
from aipa.aggregator import ListingAggregator
from aipa.ai.orchestrator import UNAVAILABLE_CHAT_REPLY, AIOrchestrator
from aipa.rag.embeddings import EmbeddingService
from aipa.rag.service import RAGService
from aipa.rag.vector_store import VectorStore
from aipa.relevance import RelevanceEngine
from aipa.schemas import MatchRules
from aipa.search_service import SearchOrchestrator


@pytest.fixture
def client(monkeypatch, tmp_path):
    service = SearchOrchestrator(
        ListingAggregator([MockAdapter()]), RelevanceEngine(None), rules=MatchRules(), index_results=False
    )
    monkeypatch.setattr(main, "search_service", service)
    monkeypatch.setattr(main, "ai", AIOrchestrator(providers=[], client=MagicMock()))
    monkeypatch.setattr(main, "rag", RAGService(VectorStore("api", data_dir=str(tmp_path)), EmbeddingService(api_key="")))
    return TestClient(main.app)


class TestSearchEndpoints:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert "mock_data" in body

    def test_search_then_fetch_and_pick(self, client):
        res = client.post("/search", json={"query": "land under 20000"})
        assert res.status_code == 200
        body = res.json()
        assert body["match_type"] == "exact"
        assert len(body["listings"]) == 3

        stored = client.get(f"/searches/{body['search_id']}")
        assert stored.status_code == 200
        assert stored.json()["query"] == "land under 20000"

        picked = client.post(f"/searches/{body['search_id']}/pick", json={"query": "the cheapest one"})
        assert picked.status_code == 200
        assert [l["id"] for l in picked.json()["listings"]] == ["mock-idealista-010"]

    def test_unsupported_currency(self, client):
        res = client.post(
            "/search", json={"query": "land under 20000", "user_location": {"currency": "JPY"}}
        )
        assert res.status_code == 400
        assert res.json() == {"detail": "Unsupported currency: JPY"}

    def test_missing_search(self, client):
        assert client.get("/searches/nope").status_code == 404
        assert client.post("/searches/nope/pick", json={"query": "best"}).status_code == 404


class TestAIEndpoints:
    def test_health_without_providers(self, client):
        assert client.get("/ai/health").json() == {"available": False, "backend": "none"}

    def test_unknown_backend(self, client):
        res = client.post("/ai/backend", json={"backend": "groq"})
        assert res.status_code == 400
        assert "Unknown backend" in res.json()["detail"]

    def test_backends_listing(self, client):
        body = client.get("/ai/backends").json()
        assert body["backends"] == []
        assert body["current"] == {"backend": "none", "model": "unknown"}

    def test_parse_falls_back(self, client):
        res = client.post("/ai/parse", json={"query": "apartment in Lisbon under 300000"})
        assert res.status_code == 200
        assert "parsed_intent" in res.json()

    def test_chat_unavailable(self, client):
        res = client.post("/chat", json={"message": "hello"})
        assert res.json() == {"reply": UNAVAILABLE_CHAT_REPLY}


class TestRagAndScrape:
    def test_stats(self, client):
        res = client.get("/rag/stats")
        assert res.status_code == 200
        assert res.json()["embedding_backend"] == "tfidf"

    def test_clear(self, client):
        assert client.delete("/rag/all").status_code == 200
        assert client.delete("/rag/listings").status_code == 200
        assert client.delete("/rag/bogus").status_code == 404

    def test_scrape_rejects_unknown_domain(self, client):
        res = client.get("/scrape", params={"url": "https://example.com/house/1"})
        assert res.status_code == 400
