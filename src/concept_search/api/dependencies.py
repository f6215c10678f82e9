from __future__ import annotations

from fastapi import Request

from concept_search.search import SearchAggregator
from concept_search.vectorstore.store_client import VectorStoreClient


def get_vector_store(request: Request) -> VectorStoreClient:
    return request.app.state.store


def get_search_aggregator(request: Request) -> SearchAggregator:
    return request.app.state.aggregator
