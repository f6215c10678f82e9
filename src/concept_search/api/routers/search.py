from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from concept_search.api.dependencies import get_search_aggregator
from concept_search.errors import ErrorKind, InvalidQueryError
from concept_search.search import Failed, Query, SearchAggregator, SearchOutcome


router = APIRouter(prefix="/search", tags=["search"])


STATUS_BY_ERROR = {
    ErrorKind.invalid_query: 400,
    ErrorKind.store_unavailable: 503,
    ErrorKind.internal_store_error: 500,
    ErrorKind.cancelled: 504,
}


class SearchRequest(BaseModel):
    query: Optional[str] = Field(
        None, min_length=1, description="Natural-language search query."
    )
    text: Optional[str] = Field(None, description="Alias of 'query'.")
    limit: Optional[int] = Field(
        None, description="Maximum hits to return; clamped to [1, 50], default 5."
    )


class SearchHitItem(BaseModel):
    id: Optional[str] = Field(None, description="Store-assigned identifier.")
    title: Optional[str] = None
    body: Optional[str] = None
    distance: Optional[float] = Field(
        None, description="Similarity distance; lower is more relevant."
    )


class SearchResponse(BaseModel):
    success: bool = True
    collection: Optional[str] = Field(
        None, description="Collection the hits came from; null when nothing matched."
    )
    results: List[SearchHitItem] = Field(default_factory=list)


class SearchErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: str = ""


_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    status: {"model": SearchErrorResponse} for status in sorted(set(STATUS_BY_ERROR.values()))
}


def outcome_to_response(outcome: SearchOutcome) -> JSONResponse:
    if isinstance(outcome, Failed):
        status = STATUS_BY_ERROR.get(outcome.reason, 500)
    else:
        status = 200
    return JSONResponse(status_code=status, content=outcome.to_dict())


async def _read_params(request: Request) -> Tuple[Any, Any]:
    """Pull (text, limit) from a JSON body on POST, else from the query string."""
    content_type = request.headers.get("content-type", "")
    if request.method == "POST" and content_type.startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidQueryError(f"Request body is not valid JSON: {e}") from e
        if not isinstance(body, dict):
            raise InvalidQueryError("Request body must be a JSON object")
        text = body.get("query", body.get("text"))
        return text, body.get("limit")

    params = request.query_params
    return params.get("query", params.get("text")), params.get("limit")


async def _search(request: Request, aggregator: SearchAggregator) -> JSONResponse:
    try:
        text, limit = await _read_params(request)
        query = Query.create(text, limit, default_limit=aggregator.config.default_limit)
    except InvalidQueryError as e:
        return outcome_to_response(Failed(e.kind, e.detail))
    return outcome_to_response(await aggregator.search(query))


@router.get(
    "",
    summary="Semantic search by query string",
    response_model=SearchResponse,
    responses=_RESPONSES,
)
async def search_get(
    request: Request,
    query: Optional[str] = None,
    limit: Optional[str] = None,
    aggregator: SearchAggregator = Depends(get_search_aggregator),
) -> JSONResponse:
    """Search with `?query=...&limit=...` (`text` is accepted for `query`)."""
    return await _search(request, aggregator)


@router.post(
    "",
    summary="Semantic search by JSON body",
    response_model=SearchResponse,
    responses=_RESPONSES,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": SearchRequest.model_json_schema()}}
        }
    },
)
async def search_post(
    request: Request,
    aggregator: SearchAggregator = Depends(get_search_aggregator),
) -> JSONResponse:
    """Search with `{"query": ..., "limit": ...}`.

    The first collection, in store order, that has any hit provides the
    results; `collection` says which one.
    """
    return await _search(request, aggregator)


@router.options("", include_in_schema=False)
async def search_preflight() -> Response:
    return Response(status_code=204)
