from __future__ import annotations

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from concept_search.api.dependencies import get_vector_store
from concept_search.errors import SearchError
from concept_search.search import CollectionDiscovery
from concept_search.vectorstore.store_client import VectorStoreClient

from .search import STATUS_BY_ERROR

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vectorstore", tags=["vectorstore"])


class ListCollectionsResponse(BaseModel):
    collections: list[str] = Field(
        ..., description="Searchable collections, in the order they are searched"
    )


class ReadyResponse(BaseModel):
    status: str = Field(..., description="'ready' when the store answered")


def _raise_for(error: SearchError, action: str) -> NoReturn:
    raise HTTPException(
        status_code=STATUS_BY_ERROR.get(error.kind, 500),
        detail=f"Failed to {action}: {error.detail}",
    ) from error


@router.get(
    "/collections",
    summary="List searchable collections in priority order",
    response_model=ListCollectionsResponse,
)
async def list_collections(
    store: VectorStoreClient = Depends(get_vector_store),
) -> ListCollectionsResponse:
    try:
        collections = await asyncio.to_thread(CollectionDiscovery(store).discover)
    except SearchError as e:
        _raise_for(e, "list collections")
    return ListCollectionsResponse(collections=[c.name for c in collections])


@router.get(
    "/ready",
    summary="Check that the vector store is reachable",
    response_model=ReadyResponse,
)
async def ready(store: VectorStoreClient = Depends(get_vector_store)) -> ReadyResponse:
    try:
        await asyncio.to_thread(store.ping)
    except SearchError as e:
        logger.error("Vector store not ready: %s", e.detail)
        _raise_for(e, "reach the vector store")
    return ReadyResponse(status="ready")
