"""One-shot multi-collection search against the configured Milvus instance.

Configuration via constants below (no CLI args). Run:
	uv run python scripts/search.py

Environment:
	OPENAI_API_KEY  (embedding, or the key of the provider in config.yaml)
	MILVUS_URI      (default http://localhost:19530)
	MILVUS_TOKEN    (default root:Milvus)
"""

from __future__ import annotations

import asyncio
import logging
from typing import List

from concept_search.search import Empty, Failed, Found, Query, SearchAggregator
from concept_search.search.types import SearchOutcome
from concept_search.settings import Settings
from concept_search.vectorstore.milvus_client import SharedMilvusClient
from concept_search.vectorstore.schemas import format_search_hit
from concept_search.vectorstore.store_client import MilvusVectorStore


# ---------------------------------------------------------------------------
# Configuration Constants
# ---------------------------------------------------------------------------
QUERY_TEXT: str = "chocolate chip cookies"
LIMIT: int = 5
LOG_LEVEL: str = "INFO"


def search(query_text: str, limit: int = LIMIT) -> SearchOutcome:
	"""Run one aggregated search and log a multi-line block with the outcome."""
	logger = logging.getLogger(__name__)

	settings = Settings.from_env()
	store = MilvusVectorStore(
		SharedMilvusClient(settings.milvus_uri, settings.milvus_token),
		vector_field=settings.vector_field,
		metric_type=settings.metric_type,
	)
	try:
		aggregator = SearchAggregator(store)
		outcome = asyncio.run(aggregator.search(Query.create(query_text, limit)))
	finally:
		store.close()

	lines: List[str] = [f"Query: {query_text!r} (limit={limit})"]
	if isinstance(outcome, Found):
		lines.append(f"Collection: {outcome.collection} ({len(outcome.hits)} hits)")
		for idx, hit in enumerate(outcome.hits, start=1):
			lines.append(f"{idx}. {format_search_hit(hit)}")
	elif isinstance(outcome, Empty):
		lines.append("No collection returned any hit.")
	elif isinstance(outcome, Failed):
		lines.append(f"Failed: {outcome.reason.value}: {outcome.detail}")
	logger.info("\n".join(lines))
	return outcome


def main() -> int:
	logging.basicConfig(
		level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s - %(message)s",
	)
	outcome = search(QUERY_TEXT, LIMIT)
	return 1 if isinstance(outcome, Failed) else 0


if __name__ == "__main__":  # pragma: no cover
	raise SystemExit(main())
