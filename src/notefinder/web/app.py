"""FastAPI application exposing the NoteFinder operations as a JSON API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from notefinder.config import AppConfig
from notefinder.service import SearchService, ToolResponse

LOGGER = logging.getLogger(__name__)


class SearchPayload(BaseModel):
    query: str
    limit: int = Field(default=10, ge=1, le=100)
    hybrid: bool = True


class IndexFilePayload(BaseModel):
    path: str


class IndexDirectoryPayload(BaseModel):
    path: str
    pattern: str | None = None


class ReindexPayload(BaseModel):
    workspace_root: str | None = None


def _unwrap(response: ToolResponse) -> dict[str, Any]:
    if response.is_error:
        status = 400 if response.data.get("error_type") == "ValueError" else 500
        raise HTTPException(status_code=status, detail=response.text)
    return {"status": "ok", "message": response.text, **response.data}


def _service(request: Request) -> SearchService:
    return request.app.state.service


def create_app(
    config: AppConfig | None = None, *, service: SearchService | None = None
) -> FastAPI:
    """Build the API around one `SearchService` that lives as long as the app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        yield
        app.state.service.close()

    app = FastAPI(title="NoteFinder API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service or SearchService(config or AppConfig.from_env())

    @app.post("/search")
    async def search_documents(payload: SearchPayload, request: Request) -> dict[str, Any]:
        query = payload.query.strip()
        if not query:
            raise HTTPException(status_code=400, detail="Empty query")
        response = await asyncio.to_thread(
            _service(request).search, query, payload.limit, payload.hybrid
        )
        return _unwrap(response)

    @app.post("/index/file")
    async def index_file(payload: IndexFilePayload, request: Request) -> dict[str, Any]:
        response = await asyncio.to_thread(_service(request).index_file, payload.path)
        return _unwrap(response)

    @app.post("/index/directory")
    async def index_directory(payload: IndexDirectoryPayload, request: Request) -> dict[str, Any]:
        response = await asyncio.to_thread(
            _service(request).index_directory, payload.path, payload.pattern
        )
        return _unwrap(response)

    @app.post("/reindex")
    async def reindex_all(payload: ReindexPayload, request: Request) -> dict[str, Any]:
        response = await asyncio.to_thread(_service(request).reindex_all, payload.workspace_root)
        return _unwrap(response)

    @app.get("/stats")
    async def get_stats(request: Request) -> dict[str, Any]:
        response = await asyncio.to_thread(_service(request).get_stats)
        return _unwrap(response)

    return app
