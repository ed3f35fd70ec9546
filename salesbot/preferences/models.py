from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..query.models import StructuredQuery

DIMENSIONS = ("budget", "categories", "brands", "specs", "purposes")


class PreferenceRecord(BaseModel):
    count: int = 0
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)


class BudgetPreference(PreferenceRecord):
    total_amount: float = 0.0
    operator: str = "around"


class KeywordPreference(PreferenceRecord):
    last_seen: float | None = None


class SpecPreference(KeywordPreference):
    type: str
    value: Any = None


class LearnedPreferences(BaseModel):
    budget: dict[str, BudgetPreference] = Field(default_factory=dict)
    categories: dict[str, KeywordPreference] = Field(default_factory=dict)
    brands: dict[str, KeywordPreference] = Field(default_factory=dict)
    specs: dict[str, SpecPreference] = Field(default_factory=dict)
    purposes: dict[str, KeywordPreference] = Field(default_factory=dict)


class SessionQuery(BaseModel):
    query: str
    parsed: StructuredQuery
    timestamp: float


class BrowsedProduct(BaseModel):
    id: str
    title: str
    url: str | None = None
    site: str | None = None
    timestamp: float


class SessionContext(BaseModel):
    current_page: str = "Unknown"
    product_count: int = 0
    last_query: str | None = None
    session_queries: list[SessionQuery] = Field(default_factory=list)
    browsed_products: list[BrowsedProduct] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Derived insights (never persisted)
# ---------------------------------------------------------------------------


class RecommendedBudget(BaseModel):
    range: str
    average_amount: int
    operator: str
    confidence: float


class RankedPreference(BaseModel):
    key: str
    confidence: float
    count: int


class SpecInsight(BaseModel):
    type: str
    value: Any = None
    confidence: float
    count: int


class SearchPatterns(BaseModel):
    total_queries: int = 0
    recent_queries: list[str] = Field(default_factory=list)
    dominant_purpose: str = "general"


class ContextualInsights(BaseModel):
    recommended_budget: RecommendedBudget | None = None
    preferred_categories: list[RankedPreference] = Field(default_factory=list)
    preferred_brands: list[RankedPreference] = Field(default_factory=list)
    common_specs: list[SpecInsight] = Field(default_factory=list)
    search_patterns: SearchPatterns = Field(default_factory=SearchPatterns)


class PageContextUpdate(BaseModel):
    site: str = Field(..., min_length=1)
    product_count: int = Field(default=0, ge=0)
