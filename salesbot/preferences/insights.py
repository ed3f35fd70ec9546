from __future__ import annotations

import math

from .models import (
    ContextualInsights,
    KeywordPreference,
    LearnedPreferences,
    RankedPreference,
    RecommendedBudget,
    SearchPatterns,
    SessionContext,
    SpecInsight,
)
from .store import PreferenceStore, rank_records

TOP_N = 3
RECENT_QUERIES = 3


def _recommended_budget(preferences: LearnedPreferences) -> RecommendedBudget | None:
    ranked = rank_records(preferences.budget)
    if not ranked:
        return None
    range_label, top = ranked[0]
    return RecommendedBudget(
        range=range_label,
        # Halves round up, not to even
        average_amount=math.floor(top.total_amount / top.count + 0.5) if top.count else 0,
        operator=top.operator,
        confidence=top.confidence,
    )


def _top_keywords(records: dict[str, KeywordPreference]) -> list[RankedPreference]:
    return [
        RankedPreference(key=key, confidence=r.confidence, count=r.count)
        for key, r in rank_records(records)[:TOP_N]
    ]


def synthesize_insights(
    preferences: LearnedPreferences,
    context: SessionContext,
) -> ContextualInsights:
    """Summarize a preference snapshot for ranking and explanation."""
    purposes = rank_records(preferences.purposes)
    return ContextualInsights(
        recommended_budget=_recommended_budget(preferences),
        preferred_categories=_top_keywords(preferences.categories),
        preferred_brands=_top_keywords(preferences.brands),
        common_specs=[
            SpecInsight(type=r.type, value=r.value, confidence=r.confidence, count=r.count)
            for _, r in rank_records(preferences.specs)[:TOP_N]
        ],
        search_patterns=SearchPatterns(
            total_queries=len(context.session_queries),
            recent_queries=[q.query for q in context.session_queries[-RECENT_QUERIES:]],
            dominant_purpose=purposes[0][0] if purposes else "general",
        ),
    )


def insights_for(store: PreferenceStore) -> ContextualInsights:
    return synthesize_insights(store.preferences, store.context)
