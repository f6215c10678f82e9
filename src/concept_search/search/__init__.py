"""Search application layer.

Multi-collection semantic search: discover the collections the vector store
declares, query them in discovery order, and return the ranked hits of the
first collection that has any.

Implementation relies on the vectorstore package only through the
VectorStoreClient protocol.
"""

from .discovery import CollectionDiscovery
from .rank import normalize_hit, rank_hits
from .service import SearchAggregator, SearchServiceConfig
from .types import Empty, Failed, Found, Query, SearchOutcome

__all__ = [
    "CollectionDiscovery",
    "Empty",
    "Failed",
    "Found",
    "Query",
    "SearchAggregator",
    "SearchOutcome",
    "SearchServiceConfig",
    "normalize_hit",
    "rank_hits",
]
