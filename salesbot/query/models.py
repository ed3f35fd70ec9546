from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Budget(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = Field(..., ge=0)
    operator: Literal["under", "around"]


class StructuredQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    budget: Budget | None = None
    categories: tuple[str, ...] = ()
    specs: dict[str, Any] = Field(default_factory=dict)
    brands: tuple[str, ...] = ()
    purpose: str = "general"
    raw_text: str = ""


class ParseRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)
