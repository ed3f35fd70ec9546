from __future__ import annotations

import asyncio
import json
import logging
import re

from groq import AsyncGroq

from ..preferences.models import ContextualInsights
from ..query.models import StructuredQuery
from .config import DEFAULT_LLM_CONFIG, LLMConfig
from .errors import ScorerCredentialMissing, ScorerTransientFailure
from .models import ScorerRequest, ScorerResponse

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert PC hardware sales assistant with access to the shopper's "
    "learned preferences and recent searches. Analyze the shopper's query and "
    "recommend the best products from the candidate list.\n\n"
    "- Weight products by both the current request and the learned preferences, "
    "using the confidence scores.\n"
    "- When the request departs from the usual budget, brands or specs, say so and "
    "explain whether the departure is reasonable.\n"
    "- Flag compatibility concerns.\n"
    "- If the category is new for the shopper, add short guidance.\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"recommendations": [{"productId": <candidate id>, "score": <0-100>, '
    '"reason": "<why>", "pros": ["..."], "cons": ["..."], '
    '"compatibility": "<notes>", "contextAlignment": "<fit with learned preferences>", '
    '"preferenceDeviation": "<departures from usual preferences>"}], '
    '"summary": "<overall summary>", "buildSuggestion": "<build advice>", '
    '"alternatives": "<alternative suggestions>", '
    '"contextInsights": "<how this query fits the shopping pattern>"}\n'
    "Use only candidate ids from the provided list. Order from best match to worst."
)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def has_api_key(config: LLMConfig = DEFAULT_LLM_CONFIG) -> bool:
    return bool(config.api_key)


def _format_insights(insights: ContextualInsights) -> list[str]:
    lines = ["## Learned Shopper Context"]
    budget = insights.recommended_budget
    if budget:
        lines.append(f"- Usual budget: {budget.range} (confidence: {budget.confidence:.0f}%)")
    else:
        lines.append("- Usual budget: None")
    categories = ", ".join(f"{c.key} ({c.confidence:.0f}%)" for c in insights.preferred_categories)
    lines.append(f"- Preferred categories: {categories or 'None'}")
    brands = ", ".join(f"{b.key} ({b.confidence:.0f}%)" for b in insights.preferred_brands)
    lines.append(f"- Preferred brands: {brands or 'None'}")
    specs = ", ".join(
        f"{s.type}: {json.dumps(s.value)} ({s.confidence:.0f}%)" for s in insights.common_specs
    )
    lines.append(f"- Common specs: {specs or 'None'}")
    patterns = insights.search_patterns
    lines.append(
        f"- Search patterns: {patterns.total_queries} total queries, "
        f"dominant purpose: {patterns.dominant_purpose}"
    )
    lines.append(f"- Recent queries: {', '.join(patterns.recent_queries) or 'None'}")
    return lines


def _format_requirements(structured: StructuredQuery) -> list[str]:
    budget = structured.budget
    return [
        "## Current Requirements",
        f"- Budget: {f'₹{budget.amount:.0f} ({budget.operator})' if budget else 'Not specified'}",
        f"- Categories: {', '.join(structured.categories) or 'Not specified'}",
        f"- Purpose: {structured.purpose}",
        f"- Brands: {', '.join(structured.brands) or 'Not specified'}",
        f"- Specs: {json.dumps(structured.specs)}",
    ]


def _build_user_message(request: ScorerRequest) -> str:
    lines: list[str] = []
    if request.insights is not None:
        lines.extend(_format_insights(request.insights))
        lines.append("")

    lines.append(f'## Shopper Query\n"{request.query}"\n')
    lines.extend(_format_requirements(request.structured_query))

    lines.append("\n## Candidate Products")
    products = [p.model_dump(by_alias=True) for p in request.products]
    lines.append(json.dumps(products, ensure_ascii=False, indent=2))

    return "\n".join(lines)


def parse_scorer_response(content: str, product_count: int) -> ScorerResponse:
    """Validate the raw LLM answer against the expected response shape.

    Raises ``ScorerTransientFailure`` when no JSON object can be found, the
    JSON does not match the shape, or a recommendation points outside the
    candidate list.
    """
    match = _JSON_OBJECT_RE.search(content)
    if not match:
        raise ScorerTransientFailure("no JSON object in scorer response")
    try:
        parsed = ScorerResponse.model_validate(json.loads(match.group(0)))
    except ValueError as exc:
        raise ScorerTransientFailure("scorer response has an unexpected shape") from exc

    for rec in parsed.recommendations:
        if rec.product_id >= product_count:
            raise ScorerTransientFailure(
                f"scorer recommended unknown product id {rec.product_id}"
            )
    return parsed


async def rank_products(
    request: ScorerRequest,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> ScorerResponse:
    """
    Ask the Groq LLM to rank and explain the candidate products.

    Raises ``ScorerCredentialMissing`` when no API key is configured and
    ``ScorerTransientFailure`` for anything else that prevents a valid
    ranking (disabled scorer, API error, timeout, malformed output).
    """
    if not config.api_key:
        raise ScorerCredentialMissing("GROQ_API_KEY is not set")
    if not config.enabled:
        raise ScorerTransientFailure("scorer is disabled")

    try:
        client = AsyncGroq(api_key=config.api_key, timeout=config.timeout)
        # Leaving the block releases the connection pool, also after a timeout
        async with client:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=config.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": _build_user_message(request)},
                    ],
                    max_tokens=config.max_tokens,
                    temperature=config.temperature,
                    response_format={"type": "json_object"},
                ),
                timeout=config.timeout,
            )
        content = response.choices[0].message.content or ""
    except asyncio.TimeoutError as exc:
        raise ScorerTransientFailure(f"scorer timed out after {config.timeout}s") from exc
    except Exception as exc:
        raise ScorerTransientFailure(f"scorer call failed: {exc}") from exc

    return parse_scorer_response(content, len(request.products))

