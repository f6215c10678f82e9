from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from concept_search.errors import InternalStoreError
from concept_search.vectorstore.schemas import Collection, SchemaDocument

if TYPE_CHECKING:
    from concept_search.vectorstore.store_client import VectorStoreClient


logger = logging.getLogger(__name__)


class CollectionDiscovery:
    """Resolve the searchable collections currently declared by the store.

    Nothing is cached between calls: the schema can change between requests,
    and the list order is the search priority.
    """

    def __init__(self, store: "VectorStoreClient"):
        self.store = store

    def discover(self) -> List[Collection]:
        schema = self.store.get_schema()
        if not isinstance(schema, SchemaDocument):
            raise InternalStoreError(f"Store returned an unexpected schema type: {type(schema).__name__}")

        collections = [c for c in schema.collections if c.name and c.name.strip()]
        logger.debug(
            "Discovered %d collection(s): %s", len(collections), [c.name for c in collections]
        )
        return collections
