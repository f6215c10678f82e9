import asyncio
import threading

import pytest

from concept_search.errors import (
    ErrorKind,
    InternalStoreError,
    StoreUnavailableError,
)
from concept_search.search import (
    Empty,
    Failed,
    Found,
    Query,
    SearchAggregator,
    SearchServiceConfig,
)
from concept_search.search.service import CollectionScan, ScanState
from concept_search.vectorstore.schemas import SearchHit

from conftest import FakeStore


def run(aggregator, query, **kwargs):
    return asyncio.run(aggregator.search(query, **kwargs))


def hit(title, distance, **extra):
    return {"title": title, "body": f"{title} body", "distance": distance, **extra}


@pytest.fixture(params=[False, True], ids=["sequential", "concurrent"])
def make_aggregator(request):
    def factory(store, **config):
        return SearchAggregator(store, SearchServiceConfig(concurrent=request.param, **config))

    return factory


def test_e2e_first_collection_with_hits_wins(make_aggregator):
    store = FakeStore(
        ["Articles", "Recipes"],
        {
            "Articles": [],
            "Recipes": [hit("Oat cookies", 0.3, id="r1"), hit("Chocolate cookies", 0.05, id="r2")],
        },
    )
    outcome = run(make_aggregator(store), Query.create("cookies"))

    assert isinstance(outcome, Found)
    assert outcome.collection == "Recipes"
    assert [h.distance for h in outcome.hits] == [0.05, 0.3]
    assert [h.id for h in outcome.hits] == ["r2", "r1"]
    assert outcome.hits[0] == SearchHit(
        id="r2", title="Chocolate cookies", body="Chocolate cookies body", distance=0.05
    )


def test_query_asks_for_expected_fields_and_concept():
    store = FakeStore(["Recipes"], {"Recipes": [hit("Soup", 0.1)]})
    run(SearchAggregator(store), Query.create("  warm soup "))
    collection, concept, limit, fields = store.queries[0]
    assert (collection, concept, limit) == ("Recipes", "warm soup", 5)
    assert fields == {"title", "body", "id", "distance"}


def test_search_is_deterministic(make_aggregator):
    store = FakeStore(
        ["A", "B"],
        {"A": [hit("a2", 0.4), hit("a1", 0.2), hit("a3", 0.4)], "B": [hit("b1", 0.01)]},
    )
    aggregator = make_aggregator(store)
    outcomes = [run(aggregator, Query.create("q")) for _ in range(3)]
    assert outcomes[0] == outcomes[1] == outcomes[2]


def test_discovery_order_beats_lower_distance(make_aggregator):
    store = FakeStore(
        ["A", "B"],
        {"A": [hit("from A", 0.9)], "B": [hit("from B", 0.001)]},
    )
    outcome = run(make_aggregator(store), Query.create("q"))
    assert isinstance(outcome, Found)
    assert outcome.collection == "A"
    # no cross-collection merge
    assert [h.title for h in outcome.hits] == ["from A"]


def test_sequential_scan_stops_at_first_success():
    store = FakeStore(
        ["A", "B", "C"],
        {"A": [], "B": [hit("b", 0.2)], "C": [hit("c", 0.1)]},
    )
    run(SearchAggregator(store), Query.create("q"))
    assert store.queried_collections == ["A", "B"]


def test_failed_collection_is_skipped(make_aggregator):
    store = FakeStore(
        ["A", "B"],
        {"A": StoreUnavailableError("timeout"), "B": [hit("b", 0.2)]},
    )
    outcome = run(make_aggregator(store), Query.create("q"))
    assert isinstance(outcome, Found)
    assert outcome.collection == "B"


def test_unexpected_exception_in_collection_is_skipped(make_aggregator):
    store = FakeStore(["A", "B"], {"A": RuntimeError("boom"), "B": [hit("b", 0.2)]})
    outcome = run(make_aggregator(store), Query.create("q"))
    assert isinstance(outcome, Found)
    assert outcome.collection == "B"


def test_malformed_hits_skip_the_collection(make_aggregator):
    store = FakeStore(
        ["A", "B"],
        {"A": [hit("ok", 0.1), {"title": 5}], "B": [hit("b", 0.2)]},
    )
    outcome = run(make_aggregator(store), Query.create("q"))
    assert isinstance(outcome, Found)
    assert outcome.collection == "B"


def test_every_collection_failing_is_store_unavailable(make_aggregator):
    store = FakeStore(
        ["A", "B"],
        {"A": StoreUnavailableError("down"), "B": InternalStoreError("garbage")},
    )
    outcome = run(make_aggregator(store), Query.create("q"))
    assert isinstance(outcome, Failed)
    assert outcome.reason is ErrorKind.store_unavailable
    assert "A: down" in outcome.detail and "B: garbage" in outcome.detail


def test_every_collection_returning_garbage_is_internal_store_error(make_aggregator):
    store = FakeStore(
        ["A", "B"],
        {"A": InternalStoreError("bad json"), "B": lambda: "not a list"},
    )
    outcome = run(make_aggregator(store), Query.create("q"))
    assert isinstance(outcome, Failed)
    assert outcome.reason is ErrorKind.internal_store_error


def test_failure_plus_empty_is_empty(make_aggregator):
    store = FakeStore(["A", "B"], {"A": StoreUnavailableError("down"), "B": []})
    assert run(make_aggregator(store), Query.create("q")) == Empty()


def test_empty_schema_is_empty(make_aggregator):
    store = FakeStore([])
    assert run(make_aggregator(store), Query.create("q")) == Empty()
    assert store.queries == []


def test_no_hits_anywhere_is_empty(make_aggregator):
    store = FakeStore(["A", "B", "C"])
    assert run(make_aggregator(store), Query.create("q")) == Empty()
    assert sorted(store.queried_collections) == ["A", "B", "C"]


def test_discovery_failure_is_reported():
    store = FakeStore(["A"], schema_error=StoreUnavailableError("auth failed"))
    outcome = run(SearchAggregator(store), Query.create("q"))
    assert outcome == Failed(ErrorKind.store_unavailable, "auth failed")


def test_malformed_schema_is_internal_store_error():
    store = FakeStore(schema_error=InternalStoreError("schema is not a list"))
    outcome = run(SearchAggregator(store), Query.create("q"))
    assert isinstance(outcome, Failed)
    assert outcome.reason is ErrorKind.internal_store_error


@pytest.mark.parametrize("text", ["", "   "])
def test_blank_text_never_reaches_the_store(text):
    store = FakeStore(["A"], {"A": [hit("a", 0.1)]})
    outcome = run(SearchAggregator(store), Query(text=text))
    assert isinstance(outcome, Failed)
    assert outcome.reason is ErrorKind.invalid_query
    assert store.schema_calls == 0
    assert store.queries == []


@pytest.mark.parametrize("limit, sent", [(1000, 50), (0, 1), (-7, 1), (12, 12)])
def test_limit_is_reclamped_before_reaching_the_store(limit, sent):
    store = FakeStore(["A"])
    run(SearchAggregator(store), Query(text="q", limit=limit))
    assert store.queries[0][2] == sent


def test_missing_distance_ranks_first():
    store = FakeStore(["A"], {"A": [hit("scored", 0.1), {"title": "unscored"}]})
    outcome = run(SearchAggregator(store), Query.create("q"))
    assert [h.title for h in outcome.hits] == ["unscored", "scored"]
    assert outcome.hits[0].distance is None


def test_outcome_owns_its_hits():
    records = [hit("a", 0.1)]
    store = FakeStore(["A"], {"A": records})
    outcome = run(SearchAggregator(store), Query.create("q"))
    records.append(hit("b", 0.0))
    assert isinstance(outcome.hits, tuple)
    assert len(outcome.hits) == 1


class BlockingStore(FakeStore):
    """Blocks every similarity query until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = threading.Event()

    def query_similar(self, collection, concept, limit, fields=frozenset()):
        self.release.wait(timeout=5)
        return super().query_similar(collection, concept, limit, fields)


async def search_then_release(store, aggregator, query, **kwargs):
    # Unblock the worker thread before the loop shuts down its executor.
    try:
        return await aggregator.search(query, **kwargs)
    finally:
        store.release.set()


def test_deadline_reports_cancelled(make_aggregator):
    store = BlockingStore(["A"], {"A": [hit("a", 0.1)]})
    outcome = asyncio.run(
        search_then_release(store, make_aggregator(store), Query.create("q"), deadline=0.05)
    )
    assert isinstance(outcome, Failed)
    assert outcome.reason is ErrorKind.cancelled


def test_configured_deadline_applies():
    store = BlockingStore(["A"], {"A": [hit("a", 0.1)]})
    aggregator = SearchAggregator(store, SearchServiceConfig(deadline=0.05))
    outcome = asyncio.run(search_then_release(store, aggregator, Query.create("q")))
    assert outcome.reason is ErrorKind.cancelled


def test_cancel_signal_reports_cancelled():
    store = BlockingStore(["A"], {"A": [hit("a", 0.1)]})

    async def scenario():
        cancel = asyncio.Event()
        task = asyncio.ensure_future(
            search_then_release(store, SearchAggregator(store), Query.create("q"), cancel_event=cancel)
        )
        await asyncio.sleep(0.05)
        cancel.set()
        return await task

    outcome = asyncio.run(scenario())
    assert outcome == Failed(ErrorKind.cancelled, "Search cancelled by caller")


def test_already_set_cancel_signal_never_reaches_the_store(make_aggregator):
    store = FakeStore(["A"], {"A": [hit("a", 0.1)]})

    async def scenario():
        cancel = asyncio.Event()
        cancel.set()
        return await make_aggregator(store).search(Query.create("q"), cancel_event=cancel)

    outcome = asyncio.run(scenario())
    assert outcome == Failed(ErrorKind.cancelled, "Search cancelled by caller")
    assert store.schema_calls == 0
    assert store.queries == []


def test_search_within_deadline_returns_normally():
    store = FakeStore(["A"], {"A": [hit("a", 0.1)]})
    outcome = run(SearchAggregator(store), Query.create("q"), deadline=5)
    assert isinstance(outcome, Found)


def test_concurrent_failure_does_not_cancel_siblings():
    store = FakeStore(
        ["A", "B", "C"],
        {"A": StoreUnavailableError("down"), "B": InternalStoreError("bad"), "C": [hit("c", 0.3)]},
    )
    aggregator = SearchAggregator(store, SearchServiceConfig(concurrent=True))
    outcome = run(aggregator, Query.create("q"))
    assert isinstance(outcome, Found)
    assert outcome.collection == "C"


def test_scan_state_machine_transitions():
    scan = CollectionScan()
    assert scan.state is ScanState.scanning
    scan.record_failure("A", StoreUnavailableError("down"))
    scan.record_hits("B", [])
    assert scan.state is ScanState.scanning
    scan.record_hits("C", [SearchHit(distance=0.1)])
    assert scan.state is ScanState.found
    with pytest.raises(RuntimeError):
        scan.record_hits("D", [SearchHit()])
    scan.finish()
    assert scan.outcome() == Found("C", (SearchHit(distance=0.1),))


def test_scan_exhausted_and_failed():
    exhausted = CollectionScan()
    exhausted.record_hits("A", [])
    exhausted.finish()
    assert exhausted.state is ScanState.exhausted
    assert exhausted.outcome() == Empty()

    failed = CollectionScan()
    failed.record_failure("A", InternalStoreError("bad"))
    failed.finish()
    assert failed.state is ScanState.failed
    assert failed.outcome().reason is ErrorKind.internal_store_error


def test_unfinished_scan_has_no_outcome():
    with pytest.raises(RuntimeError):
        CollectionScan().outcome()
