from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from concept_search.errors import (
    ErrorKind,
    InternalStoreError,
    SearchError,
    StoreUnavailableError,
)
from concept_search.vectorstore.schemas import SearchHit

from .discovery import CollectionDiscovery
from .rank import normalize_hit, rank_hits
from .types import DEFAULT_LIMIT, Empty, Failed, Found, Query, SearchOutcome, clamp_limit

if TYPE_CHECKING:
    from concept_search.vectorstore.store_client import VectorStoreClient


logger = logging.getLogger(__name__)

SEARCH_FIELDS = frozenset({"title", "body", "id", "distance"})


@dataclass(frozen=True)
class SearchServiceConfig:
    default_limit: int = DEFAULT_LIMIT
    # Seconds; None means no deadline unless the caller passes one.
    deadline: Optional[float] = None
    concurrent: bool = False


class ScanState(str, Enum):
    scanning = "Scanning"
    found = "Found"
    exhausted = "Exhausted"
    failed = "Failed"


class CollectionScan:
    """State of one pass over the discovered collections.

    Scanning -> Found      on the first collection with >= 1 hit
    Scanning -> Exhausted  when finished and at least one collection answered
    Scanning -> Failed     when finished and every collection failed
    """

    def __init__(self) -> None:
        self.state = ScanState.scanning
        self.collection: Optional[str] = None
        self.hits: Tuple[SearchHit, ...] = ()
        self.queried = 0
        self.failures: List[Tuple[str, SearchError]] = []

    def _require_scanning(self) -> None:
        if self.state is not ScanState.scanning:
            raise RuntimeError(f"Scan already finished in state {self.state.value}")

    def record_hits(self, collection: str, hits: Sequence[SearchHit]) -> None:
        self._require_scanning()
        self.queried += 1
        if hits:
            self.state = ScanState.found
            self.collection = collection
            self.hits = tuple(hits)

    def record_failure(self, collection: str, error: SearchError) -> None:
        self._require_scanning()
        self.queried += 1
        self.failures.append((collection, error))

    def finish(self) -> None:
        if self.state is not ScanState.scanning:
            return
        if self.queried and len(self.failures) == self.queried:
            self.state = ScanState.failed
        else:
            self.state = ScanState.exhausted

    def outcome(self) -> SearchOutcome:
        if self.state is ScanState.found:
            return Found(collection=self.collection or "", hits=self.hits)
        if self.state is ScanState.exhausted:
            return Empty()
        if self.state is ScanState.failed:
            # Parse errors only surface as such when nothing failed for connectivity.
            if all(e.kind is ErrorKind.internal_store_error for _, e in self.failures):
                reason = ErrorKind.internal_store_error
            else:
                reason = ErrorKind.store_unavailable
            detail = "; ".join(f"{name}: {e.detail}" for name, e in self.failures)
            return Failed(reason, f"All {len(self.failures)} collection(s) failed: {detail}")
        raise RuntimeError("Scan has not finished")


class SearchAggregator:
    """Search across every collection the store declares; first hit wins.

    Collections are queried in discovery order and the first one returning at
    least one hit provides the whole result; later collections are never
    merged in. Per-collection failures are logged and skipped.
    """

    def __init__(self, store: "VectorStoreClient", config: SearchServiceConfig | None = None):
        self.store = store
        self.config = config or SearchServiceConfig()
        self.discovery = CollectionDiscovery(store)

    async def search(
        self,
        query: Query,
        *,
        deadline: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SearchOutcome:
        """Run one search.

        `deadline` is in seconds and falls back to the configured one. When it
        elapses, or `cancel_event` is set, in-flight store calls are abandoned
        and the outcome is Failed(Cancelled).
        """
        text = query.text.strip() if isinstance(query.text, str) else ""
        if not text:
            return Failed(ErrorKind.invalid_query, "Query text must be a non-empty string")
        try:
            limit = clamp_limit(query.limit, self.config.default_limit)
        except (TypeError, ValueError):
            return Failed(ErrorKind.invalid_query, f"Invalid limit: {query.limit!r}")

        if deadline is None:
            deadline = self.config.deadline
        if deadline is None and cancel_event is None:
            return await self._run(text, limit)
        return await self._run_cancellable(text, limit, deadline, cancel_event)

    async def _run_cancellable(
        self,
        text: str,
        limit: int,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> SearchOutcome:
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Search cancelled by caller before it started for query %r", text)
            return Failed(ErrorKind.cancelled, "Search cancelled by caller")

        scan = asyncio.ensure_future(self._run(text, limit))
        waiters = {scan}
        cancel_wait = None
        if cancel_event is not None:
            cancel_wait = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_wait)
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=deadline, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
            if not scan.done():
                scan.cancel()

        if scan in done:
            return scan.result()
        if cancel_wait is not None and cancel_wait in done:
            detail = "Search cancelled by caller"
        else:
            detail = f"Search deadline of {deadline}s exceeded"
        logger.warning("%s for query %r", detail, text)
        return Failed(ErrorKind.cancelled, detail)

    async def _run(self, text: str, limit: int) -> SearchOutcome:
        try:
            collections = await asyncio.to_thread(self.discovery.discover)
        except SearchError as e:
            logger.error("Collection discovery failed: %s", e.detail)
            return Failed(e.kind, e.detail)
        except Exception as e:
            logger.exception("Collection discovery failed unexpectedly")
            return Failed(ErrorKind.store_unavailable, str(e))

        if not collections:
            logger.info("No collections declared in the store; nothing to search.")
            return Empty()

        scan = CollectionScan()
        attempts = [self._query_collection(c.name, text, limit) for c in collections]
        if self.config.concurrent:
            attempts = [asyncio.ensure_future(a) for a in attempts]
        try:
            for collection, attempt in zip(collections, attempts):
                hits, error = await attempt
                if error is not None:
                    logger.warning("Skipping collection '%s': %s", collection.name, error.detail)
                    scan.record_failure(collection.name, error)
                    continue
                scan.record_hits(collection.name, rank_hits(hits))
                if scan.state is ScanState.found:
                    break
        finally:
            for attempt in attempts:
                if isinstance(attempt, asyncio.Future):
                    attempt.cancel()
                else:
                    attempt.close()

        scan.finish()
        outcome = scan.outcome()
        if isinstance(outcome, Found):
            logger.info(
                "Query %r matched %d hit(s) in collection '%s'",
                text,
                len(outcome.hits),
                outcome.collection,
            )
        return outcome

    async def _query_collection(
        self, collection: str, text: str, limit: int
    ) -> Tuple[List[SearchHit], Optional[SearchError]]:
        """Query one collection; errors are returned, not raised."""
        try:
            raw = await asyncio.to_thread(
                self.store.query_similar, collection, text, limit, SEARCH_FIELDS
            )
            if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
                raise InternalStoreError(
                    f"Similarity query returned {type(raw).__name__}, expected a list of hits"
                )
            return [normalize_hit(record) for record in raw], None
        except SearchError as e:
            return [], e
        except Exception as e:
            logger.exception("Unexpected error querying collection '%s'", collection)
            return [], StoreUnavailableError(str(e))
