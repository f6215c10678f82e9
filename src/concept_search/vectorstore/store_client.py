from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import (
    AbstractSet,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from pymilvus.exceptions import MilvusException

from concept_search.errors import InternalStoreError, StoreUnavailableError

from .embeddings import Embedder
from .milvus_client import SharedMilvusClient
from .schemas import Collection, SchemaDocument

logger = logging.getLogger(__name__)

# Fields a similarity query asks for; id/distance come back as hit metadata.
DEFAULT_FIELDS = frozenset({"title", "body", "id", "distance"})
METADATA_FIELDS = frozenset({"id", "distance"})

DISTANCE_METRICS = frozenset({"L2", "HAMMING", "JACCARD"})
SIMILARITY_METRICS = frozenset({"IP", "COSINE"})


@runtime_checkable
class VectorStoreClient(Protocol):
    """The two store capabilities the search core depends on (plus ops hooks)."""

    def get_schema(self) -> SchemaDocument: ...

    def query_similar(
        self,
        collection: str,
        concept: str,
        limit: int,
        fields: AbstractSet[str] = DEFAULT_FIELDS,
    ) -> List[Mapping[str, Any]]: ...

    def ping(self) -> None: ...

    def close(self) -> None: ...


def parse_schema(raw: Any) -> SchemaDocument:
    """Strictly parse a collection listing into a SchemaDocument.

    Accepts a sequence of names (what MilvusClient.list_collections returns).
    Blank names are dropped; anything that is not a string is a shape error.
    """
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        raise InternalStoreError(f"Schema listing is not a sequence: {type(raw).__name__}")
    collections: List[Collection] = []
    for entry in raw:
        if not isinstance(entry, str):
            raise InternalStoreError(
                f"Collection name has unexpected type {type(entry).__name__}"
            )
        if entry.strip():
            collections.append(Collection(name=entry))
    return SchemaDocument(collections=tuple(collections))


def to_distance(value: Any, metric: str) -> Any:
    """Turn a raw Milvus score into a distance where lower is more relevant.

    L2/HAMMING/JACCARD already are distances. IP and COSINE are similarities,
    so they are flipped. Any other metric cannot be ranked and is rejected.
    """
    if value is None or metric in DISTANCE_METRICS:
        return value
    if metric not in SIMILARITY_METRICS:
        raise InternalStoreError(f"Unsupported metric type: {metric!r}")
    if isinstance(value, bool):
        raise InternalStoreError(f"Invalid score: {value!r}")
    try:
        score = float(value)
    except (TypeError, ValueError) as e:
        raise InternalStoreError(f"Invalid score: {value!r}") from e
    if metric == "COSINE":
        return 1.0 - score
    return -score


def _hit_value(hit: Any, key: str) -> Any:
    return hit.get(key) if isinstance(hit, Mapping) else getattr(hit, key, None)


def flatten_hits(
    results: Any, fields: AbstractSet[str], metric: str = "L2"
) -> List[Dict[str, Any]]:
    """Convert a MilvusClient.search result (one query) into flat hit records.

    Milvus returns one list of hits per query vector; each hit looks like
    {"id": ..., "distance": ..., "entity": {...output fields...}}. The
    distance is rewritten per `metric` so lower always means closer.
    """
    if not results:
        return []
    try:
        hits = results[0]
        iter(hits)
    except (TypeError, IndexError, KeyError) as e:
        raise InternalStoreError(f"Unexpected search result shape: {type(results).__name__}") from e

    records: List[Dict[str, Any]] = []
    for hit in hits:
        if not isinstance(hit, Mapping) and not hasattr(hit, "entity"):
            raise InternalStoreError(f"Unexpected hit shape: {type(hit).__name__}")
        entity = _hit_value(hit, "entity") or {}
        if not isinstance(entity, Mapping):
            raise InternalStoreError(f"Unexpected entity shape: {type(entity).__name__}")
        record: Dict[str, Any] = {}
        for name in fields:
            if name == "distance":
                value = to_distance(_hit_value(hit, name), metric)
            elif name in METADATA_FIELDS:
                value = _hit_value(hit, name)
            else:
                value = entity.get(name)
            if value is not None:
                record[name] = value
        records.append(record)
    return records


class MilvusVectorStore:
    """VectorStoreClient backed by Milvus.

    Schema introspection is `list_collections`; a similarity query embeds the
    concept and runs a dense `search` against the collection. pymilvus and
    embedding errors are translated into the search error taxonomy here so
    nothing above this layer sees a driver exception.

    The metric of each collection's vector index is looked up before a search
    (unless `metric_type` pins it) so IP/COSINE scores come back as distances.
    """

    def __init__(
        self,
        client: Optional[SharedMilvusClient] = None,
        embedder: Optional[Embedder] = None,
        *,
        vector_field: Optional[str] = None,
        metric_type: Optional[str] = None,
        embedder_factory: Callable[[], Embedder] = Embedder,
        embed_cache_size: int = 256,
    ) -> None:
        self.client = client or SharedMilvusClient()
        self.vector_field = vector_field
        self.metric_type = metric_type.upper() if metric_type else None
        self._embedder = embedder
        self._embedder_factory = embedder_factory
        self._embedder_lock = threading.Lock()
        self._embed = lru_cache(maxsize=embed_cache_size)(self._embed_uncached)

    @property
    def embedder(self) -> Embedder:
        embedder = self._embedder
        if embedder is not None:
            return embedder
        with self._embedder_lock:
            if self._embedder is None:
                self._embedder = self._embedder_factory()
            return self._embedder

    def _embed_uncached(self, text: str) -> Tuple[float, ...]:
        try:
            vec = self.embedder.embed_query(text)
        except Exception as e:
            raise StoreUnavailableError(f"Embedding the search concept failed: {e}") from e
        if not vec:
            raise InternalStoreError("Embedding model returned an empty vector")
        return tuple(vec)

    def _milvus(self):
        try:
            return self.client.get()
        except (MilvusException, OSError) as e:
            raise StoreUnavailableError(f"Cannot connect to Milvus: {e}") from e

    def _index_metric(self, client, collection: str) -> str:
        if self.metric_type:
            return self.metric_type
        try:
            if self.vector_field:
                index_names = client.list_indexes(collection, field_name=self.vector_field)
            else:
                index_names = client.list_indexes(collection)
            metrics = []
            for index_name in index_names or ():
                info = client.describe_index(collection, index_name)
                if isinstance(info, Mapping) and info.get("metric_type"):
                    metrics.append(str(info["metric_type"]).upper())
        except (MilvusException, OSError) as e:
            raise StoreUnavailableError(f"Describing indexes of '{collection}' failed: {e}") from e

        # A hybrid collection also carries a sparse (BM25) index; rank by the dense one.
        for metric in metrics:
            if metric in DISTANCE_METRICS or metric in SIMILARITY_METRICS:
                return metric
        if metrics:
            raise InternalStoreError(f"Unsupported metric type in '{collection}': {metrics[0]}")
        raise InternalStoreError(f"Collection '{collection}' has no vector index")

    def get_schema(self) -> SchemaDocument:
        client = self._milvus()
        try:
            raw = client.list_collections()
        except (MilvusException, OSError) as e:
            raise StoreUnavailableError(f"Failed to list collections: {e}") from e
        return parse_schema(raw)

    def query_similar(
        self,
        collection: str,
        concept: str,
        limit: int,
        fields: AbstractSet[str] = DEFAULT_FIELDS,
    ) -> List[Mapping[str, Any]]:
        vector = list(self._embed(concept))
        client = self._milvus()
        metric = self._index_metric(client, collection)
        output_fields = sorted(f for f in fields if f not in METADATA_FIELDS)
        kwargs: Dict[str, Any] = {}
        if self.vector_field:
            kwargs["anns_field"] = self.vector_field
        try:
            results = client.search(
                collection_name=collection,
                data=[vector],
                limit=limit,
                output_fields=output_fields,
                search_params={"metric_type": metric},
                **kwargs,
            )
        except (MilvusException, OSError) as e:
            raise StoreUnavailableError(f"Search in '{collection}' failed: {e}") from e
        return flatten_hits(results, fields, metric)

    def ping(self) -> None:
        self.get_schema()

    def close(self) -> None:
        self.client.close()
