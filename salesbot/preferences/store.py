"""
Durable, confidence-weighted preference store.

Within a dimension, every key's confidence is its share of the dimension's
total observation count::

    confidence(key) = min(100, count(key) / sum(counts) * 100)

and it is recomputed for all keys of a dimension whenever that dimension
changes. Updates are built on copies and swapped in with one assignment, and
all mutations are serialized by a per-store ``asyncio.Lock``, so a reader
never observes a count that has not been renormalized yet.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, TypeVar

from pydantic import ValidationError

from ..query.models import Budget, StructuredQuery
from .config import DEFAULT_STORE_CONFIG, StoreConfig
from .models import (
    DIMENSIONS,
    BrowsedProduct,
    BudgetPreference,
    KeywordPreference,
    LearnedPreferences,
    PreferenceRecord,
    RankedPreference,
    SessionContext,
    SessionQuery,
    SpecPreference,
)
from .storage import PersistenceError, RecordStorage

if TYPE_CHECKING:
    from ..recommendations.models import Product

logger = logging.getLogger(__name__)

PREFERENCES_UPDATED = "preferences_updated"
CONTEXT_UPDATED = "context_updated"

Notifier = Callable[[str, dict[str, Any]], Any]
R = TypeVar("R", bound=PreferenceRecord)

# Upper bounds (exclusive) of the budget buckets, in rupees.
BUDGET_RANGES: list[tuple[float, str]] = [
    (20_000, "Under ₹20k"),
    (50_000, "₹20k - ₹50k"),
    (75_000, "₹50k - ₹75k"),
    (100_000, "₹75k - ₹1L"),
    (150_000, "₹1L - ₹1.5L"),
]
TOP_BUDGET_RANGE = "Above ₹1.5L"


def budget_range(amount: float) -> str:
    for limit, label in BUDGET_RANGES:
        if amount < limit:
            return label
    return TOP_BUDGET_RANGE


def spec_key(spec_type: str, value: Any) -> str:
    return f"{spec_type}:{json.dumps(value, separators=(',', ':'))}"


def renormalize(records: dict[str, R]) -> dict[str, R]:
    """Return a copy of ``records`` with every confidence recomputed."""
    total = sum(r.count for r in records.values())
    if total <= 0:
        return {k: r.model_copy(update={"confidence": 0.0}) for k, r in records.items()}
    return {
        k: r.model_copy(update={"confidence": min(100.0, r.count / total * 100)})
        for k, r in records.items()
    }


def rank_records(records: dict[str, R]) -> list[tuple[str, R]]:
    """Sort by confidence, highest first; ties keep insertion order."""
    return sorted(records.items(), key=lambda item: item[1].confidence, reverse=True)


def _learn_budget(current: dict[str, BudgetPreference], budget: Budget) -> dict[str, BudgetPreference]:
    updated = dict(current)
    key = budget_range(budget.amount)
    record = updated.get(key) or BudgetPreference(operator=budget.operator)
    updated[key] = record.model_copy(update={
        "count": record.count + 1,
        "total_amount": record.total_amount + budget.amount,
        "operator": budget.operator,
    })
    return renormalize(updated)


def _learn_keywords(
    current: dict[str, KeywordPreference],
    keys: Iterable[str],
    now: float,
) -> dict[str, KeywordPreference]:
    updated = dict(current)
    for key in keys:
        record = updated.get(key) or KeywordPreference()
        updated[key] = record.model_copy(update={"count": record.count + 1, "last_seen": now})
    return renormalize(updated)


def _learn_specs(
    current: dict[str, SpecPreference],
    specs: dict[str, Any],
    now: float,
) -> dict[str, SpecPreference]:
    updated = dict(current)
    for spec_type, value in specs.items():
        key = spec_key(spec_type, value)
        record = updated.get(key) or SpecPreference(type=spec_type, value=value)
        updated[key] = record.model_copy(update={"count": record.count + 1, "last_seen": now})
    return renormalize(updated)


class PreferenceStore:
    """Single owner of a shopper's learned preferences and session context.

    All mutation goes through :meth:`learn`, :meth:`clear`,
    :meth:`update_page_context` and :meth:`record_browsed_product`. Each
    mutation persists the affected record(s) and then calls ``notifier``
    with ``(event_type, payload)``; persistence and notification failures
    are logged and never undo the in-memory update.
    """

    def __init__(
        self,
        storage: RecordStorage,
        config: StoreConfig = DEFAULT_STORE_CONFIG,
        notifier: Notifier | None = None,
    ) -> None:
        self.storage = storage
        self.config = config
        self.notifier = notifier
        self._preferences = LearnedPreferences()
        self._context = SessionContext()
        self._lock = asyncio.Lock()
        self._loaded = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Read both persisted records; missing or unreadable ones start empty."""
        async with self._lock:
            if self._loaded:
                return
            self._preferences = await self._read_record(
                self.config.preferences_record, LearnedPreferences,
            )
            self._context = await self._read_record(
                self.config.context_record, SessionContext,
            )
            self._loaded = True
            logger.info(
                "Preference store loaded: %d session queries, %d categories",
                len(self._context.session_queries),
                len(self._preferences.categories),
            )

    async def _read_record(self, name: str, model: type[Any]) -> Any:
        try:
            raw = await self.storage.read(name)
        except PersistenceError:
            logger.warning("Failed to read record %s, starting empty", name, exc_info=True)
            return model()
        if raw is None:
            return model()
        try:
            return model.model_validate(raw)
        except ValidationError:
            logger.warning("Record %s is malformed, starting empty", name, exc_info=True)
            return model()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def learn(self, query: str, structured: StructuredQuery) -> None:
        """Record a query in the session history and learn from its fields."""
        await self.load()
        async with self._lock:
            now = time.time()

            context = self._context.model_copy(deep=True)
            context.last_query = query
            context.session_queries.append(
                SessionQuery(query=query, parsed=structured, timestamp=now)
            )
            context.session_queries = context.session_queries[-self.config.max_session_queries:]

            current = self._preferences
            updates: dict[str, Any] = {}
            if structured.budget is not None:
                updates["budget"] = _learn_budget(current.budget, structured.budget)
            if structured.categories:
                updates["categories"] = _learn_keywords(current.categories, structured.categories, now)
            if structured.brands:
                updates["brands"] = _learn_keywords(current.brands, structured.brands, now)
            if structured.specs:
                updates["specs"] = _learn_specs(current.specs, structured.specs, now)
            if structured.purpose:
                updates["purposes"] = _learn_keywords(current.purposes, [structured.purpose], now)

            self._preferences = current.model_copy(update=updates)
            self._context = context

            await self._save_preferences()
            await self._save_context()

    async def clear(self) -> None:
        """Forget all learned preferences. Session context is kept."""
        await self.load()
        async with self._lock:
            self._preferences = LearnedPreferences()
            logger.info("Learned preferences cleared")
            await self._save_preferences()

    async def update_page_context(self, site: str, product_count: int) -> SessionContext:
        await self.load()
        async with self._lock:
            self._context = self._context.model_copy(
                update={"current_page": site, "product_count": product_count},
            )
            await self._save_context()
            return self.context

    async def record_browsed_product(self, product: Product) -> None:
        await self.load()
        async with self._lock:
            context = self._context.model_copy(deep=True)
            context.browsed_products.append(BrowsedProduct(
                id=product.id,
                title=product.title,
                url=product.url,
                site=product.site,
                timestamp=time.time(),
            ))
            context.browsed_products = context.browsed_products[-self.config.max_browsed_products:]
            self._context = context
            await self._save_context()

    # ------------------------------------------------------------------
    # Persistence + notification
    # ------------------------------------------------------------------

    async def _save_preferences(self) -> None:
        payload = self._preferences.model_dump(mode="json")
        await self._write(self.config.preferences_record, payload)
        self._notify(PREFERENCES_UPDATED, payload)

    async def _save_context(self) -> None:
        payload = self._context.model_dump(mode="json")
        await self._write(self.config.context_record, payload)
        self._notify(CONTEXT_UPDATED, payload)

    async def _write(self, name: str, payload: dict[str, Any]) -> None:
        try:
            await self.storage.write(name, payload)
        except PersistenceError:
            logger.warning("Failed to persist record %s, keeping in-memory state", name, exc_info=True)
        except Exception:
            logger.warning("Storage backend error on record %s, keeping in-memory state", name, exc_info=True)

    def _notify(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(event_type, payload)
        except Exception:
            logger.warning("Change listener failed for %s", event_type, exc_info=True)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def preferences(self) -> LearnedPreferences:
        return self._preferences.model_copy(deep=True)

    @property
    def context(self) -> SessionContext:
        return self._context.model_copy(deep=True)

    def _dimension(self, dimension: str) -> dict[str, PreferenceRecord]:
        if dimension not in DIMENSIONS:
            raise ValueError(f"unknown preference dimension: {dimension}")
        return getattr(self._preferences, dimension)

    def ranked(self, dimension: str) -> list[tuple[str, PreferenceRecord]]:
        """Snapshot of one dimension, highest confidence first."""
        records = self._dimension(dimension)
        return [(k, r.model_copy()) for k, r in rank_records(records)]

    def preferred(self, dimension: str, limit: int | None = None) -> list[RankedPreference]:
        ranked = self.ranked(dimension)
        if limit is not None:
            ranked = ranked[:limit]
        return [
            RankedPreference(key=k, confidence=r.confidence, count=r.count)
            for k, r in ranked
        ]

    def confidence(self, dimension: str, key: str) -> float:
        record = self._dimension(dimension).get(key)
        return record.confidence if record is not None else 0.0
