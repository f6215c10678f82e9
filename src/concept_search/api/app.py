from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.middleware.cors import CORSMiddleware

from concept_search.search import SearchAggregator, SearchServiceConfig
from concept_search.settings import Settings
from concept_search.vectorstore.milvus_client import SharedMilvusClient
from concept_search.vectorstore.store_client import MilvusVectorStore
from .routers.search import router as search_router
from .routers.vectorstore import router as vectorstore_router


settings = Settings.from_env()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def build_aggregator(store, config: Settings) -> SearchAggregator:
    return SearchAggregator(
        store,
        SearchServiceConfig(
            default_limit=config.default_limit,
            deadline=config.deadline_seconds,
            concurrent=config.concurrent,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One store per process; the Milvus connection itself opens on first use.
    store = MilvusVectorStore(
        SharedMilvusClient(settings.milvus_uri, settings.milvus_token),
        vector_field=settings.vector_field,
        metric_type=settings.metric_type,
    )
    app.state.store = store
    app.state.aggregator = build_aggregator(store, settings)
    try:
        yield
    finally:
        store.close()


"""
FastAPI application

Note on OpenAPI/Swagger docs:
Some recent combinations of FastAPI/Starlette serve the OpenAPI schema with
the vendor media type "application/vnd.oai.openapi+json". In certain client
environments (or with strict Accept headers), this can cause a 406 Not
Acceptable when the Swagger UI tries to fetch /openapi.json.

To avoid that, we disable the auto-registered OpenAPI/docs routes and add
explicit JSONResponse-based endpoints for the schema and Swagger UI.
"""

# Disable built-in docs/openapi routes; we'll provide explicit JSON-based ones
app = FastAPI(
    title="Concept Search API",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    root_path=settings.api_base_path,
)


# CORS: allow browser apps hosted on other origins to call this API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Mount routers
app.include_router(search_router)
app.include_router(vectorstore_router)


@app.get("/health", tags=["ops"], summary="Health check")
async def health():
    return {"status": "ok"}


def _with_servers(base_path: str | None):
    """Return OpenAPI schema optionally annotated with servers -> [{url: base_path}].

    This ensures Swagger UI "Try it out" respects a deployment subpath.
    """
    schema = app.openapi()
    if base_path and base_path != "/":
        # Copy-on-write: FastAPI caches app.openapi()
        schema = {**schema, "servers": [{"url": base_path}]}
    return schema


# Explicit OpenAPI JSON (forces application/json, avoids 406 with strict Accept)
@app.get("/openapi.json", include_in_schema=False)
def openapi_json():
    return JSONResponse(_with_servers(settings.api_base_path or None))


# Relative openapi_url so the UI works when served under a subpath.
@app.get("/docs", include_in_schema=False)
def swagger_ui():
    return get_swagger_ui_html(openapi_url="openapi.json", title="API Docs")
