from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from ..llm.errors import ScorerCredentialMissing, ScorerTransientFailure
from ..llm.groq_client import rank_products
from ..llm.models import ScorerProduct, ScorerRequest, ScorerResponse
from ..preferences.models import ContextualInsights
from ..query.models import StructuredQuery
from .config import DEFAULT_FUNNEL_CONFIG, FunnelConfig
from .filters import cap_candidates, filter_products
from .models import (
    FallbackReason,
    Product,
    RecommendationItem,
    RecommendationResult,
)

logger = logging.getLogger(__name__)

Scorer = Callable[[ScorerRequest], Awaitable[ScorerResponse]]

FALLBACK_REASON = "Matched based on your search criteria"
HIGH_RATING = 4.0

NO_MATCHES_MESSAGE = "No products matched your budget and category. Try widening your search."
CREDENTIAL_MISSING_MESSAGE = (
    "AI analysis unavailable. Please set up your Groq API key to get AI-powered recommendations."
)
SCORER_FAILURE_MESSAGE = (
    "Basic filtering applied. AI ranking is temporarily unavailable, showing top matches."
)


def fallback_score(product: Product) -> float:
    rating_points = product.rating * 8 if product.rating is not None else 0.0
    return min(100.0, 50 + rating_points)


def fallback_pros(product: Product) -> list[str]:
    if product.rating is not None and product.rating >= HIGH_RATING:
        return ["High rating"]
    return [f"Available on {product.site or 'this site'}"]


def summarize_products(products: list[Product]) -> list[ScorerProduct]:
    """Project candidates onto the fields the scorer sees; ids are list positions."""
    return [
        ScorerProduct(
            id=index,
            title=p.title,
            price=p.price,
            category=p.category,
            specs=p.specs,
            rating=p.rating,
            site=p.site,
        )
        for index, p in enumerate(products)
    ]


class RecommendationFunnel:
    """Filter → cap → score pipeline over catalog products.

    Scorer failures never escape :meth:`recommend`; they turn into a
    deterministic fallback ranking flagged on the result.
    """

    def __init__(
        self,
        scorer: Scorer = rank_products,
        config: FunnelConfig = DEFAULT_FUNNEL_CONFIG,
    ) -> None:
        self.scorer = scorer
        self.config = config

    async def recommend(
        self,
        structured: StructuredQuery,
        products: list[Product],
        insights: ContextualInsights | None = None,
    ) -> RecommendationResult:
        start_time = time.time()

        # --- Stage A: hard filters ---
        filtered = filter_products(products, structured, self.config)
        if not filtered:
            logger.info("No products matched query %r", structured.raw_text)
            return RecommendationResult(
                total_products=len(products),
                filtered_products=0,
                no_matches=True,
                message=NO_MATCHES_MESSAGE,
            )

        # --- Stage B: cost cap ---
        candidates = cap_candidates(filtered, self.config)

        # --- Stage C: LLM scoring with fallback ---
        request = ScorerRequest(
            query=structured.raw_text,
            products=summarize_products(candidates),
            structured_query=structured,
            insights=insights,
        )
        try:
            response = await self.scorer(request)
            result = self._from_scorer(response, candidates, len(products))
        except ScorerCredentialMissing:
            logger.info("Scorer credential missing, using fallback ranking")
            result = self._fallback(candidates, len(products), FallbackReason.credential_missing)
        except ScorerTransientFailure:
            logger.warning("Scorer failed, falling back to heuristic ranking", exc_info=True)
            result = self._fallback(candidates, len(products), FallbackReason.scorer_failure)
        except Exception:
            logger.warning("Unexpected scorer error, falling back to heuristic ranking", exc_info=True)
            result = self._fallback(candidates, len(products), FallbackReason.scorer_failure)

        elapsed_ms = round((time.time() - start_time) * 1000, 1)
        logger.debug(
            "Recommended %d of %d products in %sms (fallback=%s)",
            len(result.recommendations), len(products), elapsed_ms, result.fallback,
        )
        return result

    def _from_scorer(
        self,
        response: ScorerResponse,
        candidates: list[Product],
        total_products: int,
    ) -> RecommendationResult:
        items = [
            RecommendationItem(
                product=candidates[rec.product_id],
                score=rec.score,
                reason=rec.reason or "",
                pros=rec.pros or [],
                cons=rec.cons or [],
                compatibility=rec.compatibility or "",
                context_alignment=rec.context_alignment or "",
                preference_deviation=rec.preference_deviation or "",
            )
            for rec in response.recommendations
        ]
        return RecommendationResult(
            recommendations=items,
            summary=response.summary or "",
            build_suggestion=response.build_suggestion or "",
            alternatives=response.alternatives or "",
            context_insights=response.context_insights or "",
            total_products=total_products,
            filtered_products=len(candidates),
        )

    def _fallback(
        self,
        candidates: list[Product],
        total_products: int,
        reason: FallbackReason,
    ) -> RecommendationResult:
        items = [
            RecommendationItem(
                product=product,
                score=fallback_score(product),
                reason=FALLBACK_REASON,
                pros=fallback_pros(product),
                cons=[],
            )
            for product in candidates[:self.config.fallback_limit]
        ]
        if reason is FallbackReason.credential_missing:
            message = CREDENTIAL_MISSING_MESSAGE
        else:
            message = SCORER_FAILURE_MESSAGE
        return RecommendationResult(
            recommendations=items,
            total_products=total_products,
            filtered_products=len(candidates),
            fallback=True,
            fallback_reason=reason,
            message=message,
        )
