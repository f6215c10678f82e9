import threading
from typing import Any, Dict, List, Mapping, Optional

import pytest

from concept_search.vectorstore.schemas import Collection, SchemaDocument
from concept_search.vectorstore.store_client import DEFAULT_FIELDS


class FakeStore:
    """In-memory VectorStoreClient that records every call it receives.

    `responses` maps a collection name to a list of raw hit records, an
    exception to raise, or a callable returning either.
    """

    def __init__(
        self,
        collections=(),
        responses: Optional[Dict[str, Any]] = None,
        schema_error: Optional[Exception] = None,
    ):
        self.collections = list(collections)
        self.responses = responses or {}
        self.schema_error = schema_error
        self.schema_calls = 0
        self.queries: List[tuple] = []
        self.closed = False
        self._lock = threading.Lock()

    def get_schema(self) -> SchemaDocument:
        self.schema_calls += 1
        if self.schema_error is not None:
            raise self.schema_error
        return SchemaDocument(tuple(Collection(name) for name in self.collections))

    def query_similar(self, collection, concept, limit, fields=DEFAULT_FIELDS) -> List[Mapping[str, Any]]:
        with self._lock:
            self.queries.append((collection, concept, limit, frozenset(fields)))
        response = self.responses.get(collection, [])
        if callable(response):
            response = response()
        if isinstance(response, Exception):
            raise response
        return list(response) if isinstance(response, (list, tuple)) else response

    def ping(self) -> None:
        self.get_schema()

    def close(self) -> None:
        self.closed = True

    @property
    def queried_collections(self) -> List[str]:
        return [q[0] for q in self.queries]


@pytest.fixture
def fake_store_factory():
    return FakeStore
