"""FastAPI entrypoint for the context search backend."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from config import SearchSettings
from embedder import Embedder
from models import (
    ContextPayload,
    RebuildResponsePayload,
    SearchRequest,
    SearchResponsePayload,
    StatsPayload,
    SuggestResponsePayload,
    stats_payload,
)
from services import SearchService
from storage import ContextStorage

logger = logging.getLogger(__name__)


def create_app(
    search_service: Optional[SearchService] = None,
    storage: Optional[ContextStorage] = None,
    settings: Optional[SearchSettings] = None,
) -> FastAPI:
    settings = settings or SearchSettings.from_env()
    storage = storage or ContextStorage(root=settings.storage_dir)
    if search_service is None:
        embedder = Embedder(settings.embed_model) if settings.embed_model else None
        search_service = SearchService(provider=storage, embedder=embedder, settings=settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        search_service.start()
        try:
            yield
        finally:
            await search_service.stop()

    app = FastAPI(
        title="Context Search Backend",
        description="In-memory search over stored AI-session contexts",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.search_service = search_service
    app.state.storage = storage

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "message": "Context search backend is running"}

    @app.post("/search", response_model=SearchResponsePayload, tags=["search"])
    async def search(request: SearchRequest):
        try:
            response = await search_service.search(
                request.query,
                filters=request.filters,
                facets=request.facets,
                options=request.options,
            )
            return SearchResponsePayload.from_response(response)
        except Exception as exc:
            logger.exception("Search failed")
            raise HTTPException(status_code=500, detail=str(exc))

    @app.get("/suggest", response_model=SuggestResponsePayload, tags=["search"])
    async def suggest(q: str = Query(default="", max_length=50), limit: int = Query(default=5, ge=1, le=10)):
        return SuggestResponsePayload(suggestions=search_service.suggest(q, limit))

    @app.get("/stats", response_model=StatsPayload, tags=["admin"])
    async def stats():
        return stats_payload(search_service.get_stats())

    @app.post("/admin/rebuild-index", response_model=RebuildResponsePayload, tags=["admin"])
    async def rebuild_index():
        try:
            executed = await search_service.rebuild_index()
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        return RebuildResponsePayload(success=True, executed=executed, entry_count=search_service.store.size())

    @app.put("/contexts/{context_id}", response_model=ContextPayload, tags=["contexts"])
    async def save_context(context_id: str, payload: ContextPayload):
        if payload.id != context_id:
            raise HTTPException(status_code=400, detail="Context id does not match the path")
        try:
            document = storage.save(payload.to_document())
            await search_service.index_document(document)
        except Exception as exc:
            logger.exception("Saving context %s failed", context_id)
            raise HTTPException(status_code=500, detail=str(exc))
        return ContextPayload.from_document(document)

    @app.delete("/contexts/{context_id}", tags=["contexts"])
    async def delete_context(context_id: str):
        try:
            deleted = storage.delete(context_id)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        removed = search_service.remove_document(context_id)
        if not deleted and not removed:
            raise HTTPException(status_code=404, detail="Context not found")
        return {"success": True, "context_id": context_id}

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(
        level=SearchSettings.from_env().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="127.0.0.1", port=8000)
