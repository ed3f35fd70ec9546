"""
Recommendation funnel.

Responsibilities:
- Accept a structured query, catalog products and optional learned insights.
- Filter candidates deterministically by budget and category.
- Cap the candidate list to bound scorer cost.
- Rank via the LLM scorer, or a deterministic fallback when it is unavailable.
"""
