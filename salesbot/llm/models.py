from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..preferences.models import ContextualInsights
from ..query.models import StructuredQuery


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScorerProduct(_WireModel):
    id: int
    title: str
    price: float
    category: str | None = None
    specs: dict[str, Any] = Field(default_factory=dict)
    rating: float | None = None
    site: str | None = None


class ScorerRequest(_WireModel):
    query: str
    products: list[ScorerProduct]
    structured_query: StructuredQuery
    insights: ContextualInsights | None = None


class ScoredProduct(_WireModel):
    product_id: int = Field(..., ge=0)
    score: float = Field(..., ge=0.0, le=100.0)
    reason: str | None = ""
    pros: list[str] | None = Field(default_factory=list)
    cons: list[str] | None = Field(default_factory=list)
    compatibility: str | None = ""
    context_alignment: str | None = ""
    preference_deviation: str | None = ""


class ScorerResponse(_WireModel):
    recommendations: list[ScoredProduct]
    summary: str | None = ""
    build_suggestion: str | None = ""
    alternatives: str | None = ""
    context_insights: str | None = ""
