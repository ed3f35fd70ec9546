from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..preferences.models import ContextualInsights
from ..query.models import StructuredQuery

_PRICE_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_RATING_OUT_OF_RE = re.compile(r"(\d+(?:\.\d+)?)\s*out of\s*5", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


class Product(BaseModel):
    id: str
    title: str
    price: float = 0.0
    rating: float | None = None
    category: str | None = None
    specs: dict[str, Any] = Field(default_factory=dict)
    brand: str | None = None
    url: str | None = None
    site: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> Any:
        """Accept display strings such as ``"₹52,999.00"``; unparseable means 0."""
        if value is None:
            return 0.0
        if isinstance(value, str):
            match = _PRICE_RE.search(value)
            return float(match.group(0).replace(",", "")) if match else 0.0
        return value

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, value: Any) -> Any:
        if isinstance(value, str):
            match = _RATING_OUT_OF_RE.search(value)
            if match:
                return float(match.group(1))
            match = _NUMBER_RE.search(value)
            return float(match.group(0)) if match else None
        return value


class FallbackReason(str, Enum):
    credential_missing = "credential_missing"
    scorer_failure = "scorer_failure"


class RecommendationItem(BaseModel):
    product: Product
    score: float
    reason: str
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    compatibility: str = ""
    context_alignment: str = ""
    preference_deviation: str = ""


class RecommendationResult(BaseModel):
    recommendations: list[RecommendationItem] = Field(default_factory=list)
    summary: str = ""
    build_suggestion: str = ""
    alternatives: str = ""
    context_insights: str = ""
    total_products: int = 0
    filtered_products: int = 0
    fallback: bool = False
    fallback_reason: FallbackReason | None = None
    no_matches: bool = False
    message: str | None = None


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)
    products: list[Product] = Field(default_factory=list)


class QueryResponse(BaseModel):
    parsed: StructuredQuery
    insights: ContextualInsights
    result: RecommendationResult
