from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from salesbot.preferences.config import StoreConfig
from salesbot.preferences.storage import InMemoryStorage, JsonFileStorage, PersistenceError
from salesbot.preferences.store import (
    CONTEXT_UPDATED,
    PREFERENCES_UPDATED,
    PreferenceStore,
    budget_range,
    spec_key,
)
from salesbot.query.models import Budget, StructuredQuery
from salesbot.recommendations.models import Product


def _query(text: str = "q", **kwargs: Any) -> StructuredQuery:
    kwargs.setdefault("purpose", "general")
    return StructuredQuery(raw_text=text, **kwargs)


class _CountingStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.reads = 0

    async def read(self, name: str) -> dict[str, Any] | None:
        self.reads += 1
        return await super().read(name)


class _BrokenStorage(InMemoryStorage):
    async def write(self, name: str, data: dict[str, Any]) -> None:
        raise PersistenceError("disk full")


class _RawErrorStorage(InMemoryStorage):
    """Backend that leaks its own exception type instead of PersistenceError."""

    async def write(self, name: str, data: dict[str, Any]) -> None:
        raise OSError("read-only file system")


class _GatedStorage(InMemoryStorage):
    """Holds every write until the gate is opened again."""

    def __init__(self) -> None:
        super().__init__()
        self.writing = asyncio.Event()
        self.gate = asyncio.Event()
        self.gate.set()

    def close_gate(self) -> None:
        self.writing.clear()
        self.gate.clear()

    async def write(self, name: str, data: dict[str, Any]) -> None:
        self.writing.set()
        await self.gate.wait()
        await super().write(name, data)


def _assert_consistent(records: dict[str, Any]) -> None:
    total = sum(r.count for r in records.values())
    if not total:
        return
    assert sum(r.confidence for r in records.values()) == pytest.approx(100)
    for record in records.values():
        assert record.confidence == pytest.approx(record.count / total * 100)


# ── Confidence ───────────────────────────────────────────────────────────


class TestConfidence:
    def test_single_key_reaches_100(self):
        store = PreferenceStore(InMemoryStorage())

        async def scenario():
            for _ in range(3):
                await store.learn("ram", _query(categories=("ram",)))

        asyncio.run(scenario())
        assert store.confidence("categories", "ram") == 100

    def test_three_to_one_split(self):
        store = PreferenceStore(InMemoryStorage())

        async def scenario():
            for _ in range(3):
                await store.learn("a", _query(categories=("laptop",)))
            await store.learn("b", _query(categories=("monitor",)))

        asyncio.run(scenario())
        assert store.confidence("categories", "laptop") == 75
        assert store.confidence("categories", "monitor") == 25

    def test_whole_dimension_renormalized(self):
        store = PreferenceStore(InMemoryStorage())

        async def scenario():
            await store.learn("a", _query(brands=("asus",)))
            await store.learn("b", _query(brands=("dell",)))

        asyncio.run(scenario())
        # asus was not touched by the second learn but must drop to 50
        assert store.confidence("brands", "asus") == 50
        assert store.confidence("brands", "dell") == 50

    def test_general_purpose_is_learned(self):
        store = PreferenceStore(InMemoryStorage())
        asyncio.run(store.learn("mouse", _query()))
        assert store.confidence("purposes", "general") == 100

    def test_unknown_dimension_rejected(self):
        store = PreferenceStore(InMemoryStorage())
        try:
            store.ranked("colors")
        except ValueError:
            pass
        else:
            raise AssertionError("expected ValueError")


# ── Budget buckets / specs ───────────────────────────────────────────────


class TestBudgetBuckets:
    def test_bucket_boundaries(self):
        assert budget_range(19_999) == "Under ₹20k"
        assert budget_range(20_000) == "₹20k - ₹50k"
        assert budget_range(50_000) == "₹50k - ₹75k"
        assert budget_range(75_000) == "₹75k - ₹1L"
        assert budget_range(100_000) == "₹1L - ₹1.5L"
        assert budget_range(150_000) == "Above ₹1.5L"

    def test_budget_record_accumulates(self):
        store = PreferenceStore(InMemoryStorage())

        async def scenario():
            await store.learn("a", _query(budget=Budget(amount=45000, operator="around")))
            await store.learn("b", _query(budget=Budget(amount=48000, operator="under")))

        asyncio.run(scenario())
        record = store.preferences.budget["₹20k - ₹50k"]
        assert record.count == 2
        assert record.total_amount == 93000
        assert record.operator == "under"
        assert record.confidence == 100


def test_spec_records_keep_decoded_value():
    store = PreferenceStore(InMemoryStorage())
    storage_spec = {"size": 512, "unit": "gb", "type": "ssd"}
    asyncio.run(store.learn("q", _query(specs={"ram": 16, "storage": storage_spec})))

    specs = store.preferences.specs
    assert set(specs) == {"ram:16", spec_key("storage", storage_spec)}
    record = specs[spec_key("storage", storage_spec)]
    assert record.type == "storage"
    assert record.value == storage_spec
    assert record.confidence == 50


# ── Session ring buffer ──────────────────────────────────────────────────


def test_session_queries_keep_last_ten_in_order():
    store = PreferenceStore(InMemoryStorage())

    async def scenario():
        for i in range(1, 13):
            await store.learn(f"query {i}", _query(f"query {i}"))

    asyncio.run(scenario())
    context = store.context
    assert len(context.session_queries) == 10
    assert [q.query for q in context.session_queries] == [f"query {i}" for i in range(3, 13)]
    assert context.last_query == "query 12"


# ── Clear ────────────────────────────────────────────────────────────────


def test_clear_empties_preferences_but_keeps_context():
    storage = InMemoryStorage()
    store = PreferenceStore(storage)

    async def scenario():
        await store.learn("gaming laptop", _query(categories=("laptop",), brands=("asus",)))
        await store.clear()

    asyncio.run(scenario())
    assert store.preferred("categories") == []
    assert store.preferred("brands") == []
    assert len(store.context.session_queries) == 1

    persisted = asyncio.run(storage.read("learned_preferences"))
    assert persisted == {"budget": {}, "categories": {}, "brands": {}, "specs": {}, "purposes": {}}


# ── Ranking ──────────────────────────────────────────────────────────────


def test_ranked_ties_keep_first_inserted_order():
    store = PreferenceStore(InMemoryStorage())

    async def scenario():
        await store.learn("a", _query(categories=("monitor", "keyboard", "mouse")))
        await store.learn("b", _query(categories=("mouse",)))

    asyncio.run(scenario())
    assert [p.key for p in store.preferred("categories")] == ["mouse", "monitor", "keyboard"]
    assert [p.key for p in store.preferred("categories", limit=2)] == ["mouse", "monitor"]


# ── Persistence ──────────────────────────────────────────────────────────


class TestPersistence:
    def test_round_trip_through_json_files(self, tmp_path):
        config = StoreConfig(data_dir=tmp_path)
        first = PreferenceStore(JsonFileStorage(tmp_path), config=config)
        asyncio.run(first.learn("under 50k laptop", _query(
            budget=Budget(amount=50000, operator="under"), categories=("laptop",),
        )))

        assert (tmp_path / "learned_preferences.json").is_file()
        assert (tmp_path / "current_context.json").is_file()

        second = PreferenceStore(JsonFileStorage(tmp_path), config=config)
        asyncio.run(second.load())
        assert second.confidence("categories", "laptop") == 100
        assert second.preferences.budget["₹50k - ₹75k"].total_amount == 50000
        assert second.context.session_queries[0].parsed.categories == ("laptop",)

    def test_missing_records_start_empty(self, tmp_path):
        store = PreferenceStore(JsonFileStorage(tmp_path))
        asyncio.run(store.load())
        assert store.preferred("categories") == []
        assert store.context.session_queries == []

    def test_corrupt_record_starts_empty(self, tmp_path):
        (tmp_path / "learned_preferences.json").write_text("{not json")
        store = PreferenceStore(JsonFileStorage(tmp_path))
        asyncio.run(store.load())
        assert store.preferences.categories == {}

    def test_load_is_idempotent(self):
        storage = _CountingStorage()
        store = PreferenceStore(storage)

        async def scenario():
            await store.load()
            await store.load()
            await store.learn("q", _query())

        asyncio.run(scenario())
        assert storage.reads == 2  # one per record, once

    def test_write_failure_keeps_in_memory_state(self):
        store = PreferenceStore(_BrokenStorage())
        asyncio.run(store.learn("ram", _query(categories=("ram",))))
        assert store.confidence("categories", "ram") == 100

    def test_unexpected_backend_error_does_not_skip_context(self):
        events: list[str] = []
        store = PreferenceStore(_RawErrorStorage(), notifier=lambda t, d: events.append(t))

        asyncio.run(store.learn("ram", _query(categories=("ram",))))

        assert store.confidence("categories", "ram") == 100
        assert store.context.last_query == "ram"
        assert events == [PREFERENCES_UPDATED, CONTEXT_UPDATED]


# ── Notifications ────────────────────────────────────────────────────────


class TestNotifications:
    def test_learn_and_clear_emit_events(self):
        events: list[tuple[str, dict]] = []
        store = PreferenceStore(InMemoryStorage(), notifier=lambda t, d: events.append((t, d)))

        async def scenario():
            await store.learn("ram", _query(categories=("ram",)))
            await store.clear()

        asyncio.run(scenario())
        types = [t for t, _ in events]
        assert types == [PREFERENCES_UPDATED, CONTEXT_UPDATED, PREFERENCES_UPDATED]
        assert events[0][1]["categories"]["ram"]["count"] == 1
        assert events[-1][1]["categories"] == {}

    def test_failing_listener_does_not_break_learning(self):
        def listener(event_type: str, data: dict) -> None:
            raise RuntimeError("sidebar closed")

        store = PreferenceStore(InMemoryStorage(), notifier=listener)
        asyncio.run(store.learn("ram", _query(categories=("ram",))))
        assert store.confidence("categories", "ram") == 100


# ── Concurrency ──────────────────────────────────────────────────────────


def test_concurrent_learns_are_serialized():
    store = PreferenceStore(InMemoryStorage())

    async def scenario():
        await asyncio.gather(*[
            store.learn(f"q{i}", _query(categories=("laptop",) if i % 4 else ("monitor",)))
            for i in range(20)
        ])

    asyncio.run(scenario())
    categories = store.preferences.categories
    assert categories["laptop"].count == 15
    assert categories["monitor"].count == 5
    assert categories["laptop"].confidence == 75
    assert categories["monitor"].confidence == 25
    assert len(store.context.session_queries) == 10


def test_reader_never_sees_partial_update():
    async def scenario():
        storage = _GatedStorage()
        store = PreferenceStore(storage)
        await store.learn("a", _query(categories=("laptop",), brands=("asus",)))

        storage.close_gate()
        first = asyncio.create_task(store.learn("b", _query(categories=("monitor",))))
        second = asyncio.create_task(store.learn("c", _query(categories=("monitor",))))
        await storage.writing.wait()

        # first learn is suspended inside its write, second waits on the lock
        during = store.preferences
        ranked = store.ranked("categories")

        storage.gate.set()
        await asyncio.gather(first, second)
        return store, during, ranked

    store, during, ranked = asyncio.run(scenario())

    for dimension in ("budget", "categories", "brands", "specs", "purposes"):
        _assert_consistent(getattr(during, dimension))
    assert during.categories["monitor"].count == 1
    assert [key for key, _ in ranked] == ["laptop", "monitor"]
    assert [record.confidence for _, record in ranked] == [50, 50]

    after = store.preferences.categories
    assert after["monitor"].count == 2
    _assert_consistent(after)


# ── Page context / browsed products ──────────────────────────────────────


def test_update_page_context_persists():
    storage = InMemoryStorage()
    store = PreferenceStore(storage)
    context = asyncio.run(store.update_page_context("Walmart", 42))

    assert context.current_page == "Walmart"
    assert context.product_count == 42
    persisted = asyncio.run(storage.read("current_context"))
    assert persisted["current_page"] == "Walmart"


def test_browsed_products_are_bounded():
    store = PreferenceStore(InMemoryStorage(), config=StoreConfig(max_browsed_products=3))

    async def scenario():
        for i in range(5):
            await store.record_browsed_product(Product(id=str(i), title=f"item {i}", price=100))

    asyncio.run(scenario())
    assert [p.id for p in store.context.browsed_products] == ["2", "3", "4"]


def test_persisted_record_is_plain_json(tmp_path):
    store = PreferenceStore(JsonFileStorage(tmp_path))
    asyncio.run(store.learn("16gb ram", _query(specs={"ram": 16})))
    data = json.loads((tmp_path / "learned_preferences.json").read_text(encoding="utf-8"))
    assert data["specs"]["ram:16"]["value"] == 16
