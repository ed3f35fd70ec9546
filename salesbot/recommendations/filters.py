from __future__ import annotations

import logging

import pandas as pd

from ..query.models import StructuredQuery
from .config import DEFAULT_FUNNEL_CONFIG, FunnelConfig
from .models import Product

logger = logging.getLogger(__name__)


def _to_frame(products: list[Product]) -> pd.DataFrame:
    return pd.DataFrame({
        "price": [float(p.price) for p in products],
        "category": [p.category for p in products],
        "title_lower": [(p.title or "").lower() for p in products],
    })


def filter_products(
    products: list[Product],
    structured: StructuredQuery,
    config: FunnelConfig = DEFAULT_FUNNEL_CONFIG,
) -> list[Product]:
    """Keep products that satisfy the budget and category constraints.

    Input order is preserved. An empty result is a normal outcome.
    """
    if not products:
        return []

    df = _to_frame(products)
    mask = pd.Series(True, index=df.index)

    budget = structured.budget
    if budget is not None:
        if budget.operator == "under":
            limit = budget.amount
        else:
            limit = budget.amount * (1 + config.around_tolerance)
        mask = mask & (df["price"] <= limit)

    if structured.categories:
        requested = list(structured.categories)
        category_mask = df["category"].isin(requested)
        for category in requested:
            category_mask = category_mask | df["title_lower"].str.contains(
                category.replace("_", " "), regex=False,
            )
        mask = mask & category_mask

    kept = [products[i] for i in df.index[mask]]
    logger.debug("Filtered %d products down to %d", len(products), len(kept))
    return kept


def cap_candidates(
    products: list[Product],
    config: FunnelConfig = DEFAULT_FUNNEL_CONFIG,
) -> list[Product]:
    return products[:config.max_candidates]
