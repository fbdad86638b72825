import logging
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from duckduckgo_search.exceptions import RatelimitException

from aipa import config
from aipa.adapters.portals import scrape_listing
from aipa.adapters.registry import default_adapters
from aipa.aggregator import ListingAggregator
from aipa.ai.orchestrator import AIOrchestrator
from aipa.diagnostics import SITE_POLICIES, SiteDiagnostics
from aipa.errors import UnsupportedCurrencyError
from aipa.rag.service import COLLECTIONS, RAGService
from aipa.relevance import RelevanceEngine
from aipa.schemas import (
    AIHealth,
    AISearchResponse,
    BackendSwitchRequest,
    BackendSwitchResult,
    ChatRequest,
    Listing,
    PickRequest,
    PickResponse,
    RAGStats,
    SearchRequest,
    SearchResponse,
    StoredSearch,
)
from aipa.search_service import SearchOrchestrator
from aipa.search_store import SearchStore
from aipa.utils.http import Http
from aipa.web_search import portal_for_url

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger("aipa")

http = Http()
rag = RAGService()
ai = AIOrchestrator(rag=rag)
search_store = SearchStore()
search_service = SearchOrchestrator(
    ListingAggregator(default_adapters(http)),
    RelevanceEngine(ai),
    ai=ai,
    store=search_store,
    diagnostics=SiteDiagnostics([] if config.MOCK_DATA else SITE_POLICIES),
    rag=rag,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await rag.initialize()
    except OSError as e:
        log.error("[RAG] knowledge indexing failed: %s", e)
    yield
    await search_service.aggregator.close()
    await http.close()
    await ai.close()
    await rag.close()


app = FastAPI(title="AI Property Assistant", version="0.2.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


@app.get("/health")
async def health():
    return {"status": "ok", "mock_data": config.MOCK_DATA}


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest):
    return await search_service.run_search(req)


@app.get("/searches/{search_id}", response_model=StoredSearch)
async def get_search(search_id: str):
    stored = search_service.store.get(search_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Search not found or expired")
    return stored


@app.post("/searches/{search_id}/pick", response_model=PickResponse)
async def pick(search_id: str, req: PickRequest):
    stored = search_service.store.get(search_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Search not found or expired")
    return await search_service.pick_best_listings(req.query, stored.listings, req.count, stored.user_location)


@app.get("/ai/health", response_model=AIHealth)
async def ai_health():
    return await ai.health()


@app.get("/ai/backends")
async def ai_backends():
    return {"backends": await ai.get_available_backends(), "current": ai.current_backend_info()}


@app.post("/ai/backend", response_model=BackendSwitchResult)
async def ai_backend(req: BackendSwitchRequest):
    result = await ai.set_active_backend(req.backend, req.model)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return result


@app.post("/ai/parse", response_model=AISearchResponse)
async def ai_parse(req: SearchRequest):
    return await ai.parse_intent(req.query)


@app.post("/chat")
async def chat(req: ChatRequest) -> Dict[str, str]:
    reply = await ai.chat(req.message, req.history, req.search_context, req.conversation_id)
    return {"reply": reply}


@app.get("/rag/stats", response_model=RAGStats)
async def rag_stats():
    return rag.get_stats()


@app.post("/rag/initialize")
async def rag_initialize():
    indexed = await rag.initialize()
    return {"indexed": indexed, "stats": rag.get_stats()}


@app.delete("/rag/{collection}", response_model=RAGStats)
async def rag_clear(collection: str):
    if collection != "all" and collection not in COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown collection: {collection}")
    rag.clear(None if collection == "all" else collection)
    return rag.get_stats()


@app.get("/scrape", response_model=Listing)
async def scrape(url: str = Query(..., description="Listing page on a supported portal")):
    if portal_for_url(url) is None:
        raise HTTPException(status_code=400, detail="Unsupported domain")
    try:
        return await scrape_listing(url, http)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.exception_handler(UnsupportedCurrencyError)
async def currency_handler(request: Request, exc: UnsupportedCurrencyError):
    return JSONResponse(status_code=400, content={"detail": f"Unsupported currency: {exc.currency}"})


@app.exception_handler(RatelimitException)
async def ratelimit_handler(request: Request, exc: RatelimitException):
    return JSONResponse(
        status_code=429,
        content={"detail": "Search provider rate-limited. Please retry later."},
    )
