from __future__ import annotations

import logging
import re
from typing import Any

from .config import DEFAULT_QUERY_CONFIG, QueryConfig
from .models import Budget, StructuredQuery
from .rules import DEFAULT_PURPOSE, DEFAULT_RULES, RuleTables, load_rules

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------

_AMOUNT = r"(?:rs\.?|₹|inr)?\s*(\d+(?:,\d+)*(?:\.\d+)?)\s*(?:k|thousand|lakhs?|crores?)?"

# Ordered: the first pattern that matches decides the amount.
_BUDGET_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?:under|below|less than|up to|upto)\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:around|about|approximately)\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:budget|price)\s*(?:of|is|around)?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:rs\.?|₹)\s*(\d+(?:,\d+)*(?:\.\d+)?)", re.IGNORECASE),
]

_THOUSAND_RE = re.compile(r"\d\s*k\b|\bthousand\b")
_LAKH_RE = re.compile(r"\blakhs?\b")
_CRORE_RE = re.compile(r"\bcrores?\b")

_UNDER_WORDS = ("under", "below", "less than", "up to", "upto")

# ---------------------------------------------------------------------------
# Specs
# ---------------------------------------------------------------------------

_RAM_RE = re.compile(r"(\d+)\s*gb\s*(?:ram|memory|ddr)", re.IGNORECASE)
_STORAGE_RE = re.compile(r"(\d+)\s*(gb|tb)\s*(?:ssd|hdd|storage)", re.IGNORECASE)
_PROCESSOR_RE = re.compile(r"(intel|amd|ryzen|core)\s*(?:i)?(\d+)", re.IGNORECASE)


def _magnitude(text: str) -> int:
    if _THOUSAND_RE.search(text):
        return 1_000
    if _LAKH_RE.search(text):
        return 100_000
    if _CRORE_RE.search(text):
        return 10_000_000
    return 1


def extract_budget(text: str) -> Budget | None:
    """Return the requested budget, or ``None`` when no price is mentioned."""
    lower = text.lower()
    for pattern in _BUDGET_PATTERNS:
        match = pattern.search(lower)
        if not match:
            continue
        amount = float(match.group(1).replace(",", "")) * _magnitude(lower)
        operator = "under" if any(w in lower for w in _UNDER_WORDS) else "around"
        return Budget(amount=amount, operator=operator)
    return None


def _match_table(text: str, table: dict[str, list[str]]) -> list[str]:
    return [key for key, keywords in table.items() if any(k in text for k in keywords)]


def extract_specs(text: str, graphics_keywords: list[str]) -> dict[str, Any]:
    lower = text.lower()
    specs: dict[str, Any] = {}

    ram = _RAM_RE.search(lower)
    if ram:
        specs["ram"] = int(ram.group(1))

    storage = _STORAGE_RE.search(lower)
    if storage:
        # SSD vs HDD is decided on the whole query, not the matched span.
        specs["storage"] = {
            "size": int(storage.group(1)),
            "unit": storage.group(2),
            "type": "ssd" if "ssd" in lower else "hdd",
        }

    if any(k in lower for k in graphics_keywords):
        specs["graphics"] = "dedicated"

    processor = _PROCESSOR_RE.search(lower)
    if processor:
        specs["processor"] = {
            "brand": processor.group(1),
            "series": processor.group(2),
        }

    return specs


def extract_purpose(text: str, table: dict[str, list[str]]) -> str:
    lower = text.lower()
    for purpose, keywords in table.items():
        if any(k in lower for k in keywords):
            return purpose
    return DEFAULT_PURPOSE


class QueryInterpreter:
    """Stateless parser from free text to :class:`StructuredQuery`.

    Every field is extracted independently with case-insensitive substring
    and regex matching against the configured rule tables.
    """

    def __init__(self, rules: RuleTables = DEFAULT_RULES) -> None:
        self.rules = rules

    @classmethod
    def from_config(cls, config: QueryConfig = DEFAULT_QUERY_CONFIG) -> QueryInterpreter:
        return cls(load_rules(config.rules_path))

    def parse(self, text: str) -> StructuredQuery:
        lower = text.lower()
        parsed = StructuredQuery(
            budget=extract_budget(lower),
            categories=tuple(_match_table(lower, self.rules.categories)),
            specs=extract_specs(lower, self.rules.graphics),
            brands=tuple(_match_table(lower, self.rules.brands)),
            purpose=extract_purpose(lower, self.rules.purposes),
            raw_text=text,
        )
        logger.debug("Parsed query %r -> %s", text, parsed.model_dump())
        return parsed


def parse_query(text: str, rules: RuleTables = DEFAULT_RULES) -> StructuredQuery:
    return QueryInterpreter(rules).parse(text)


def generate_search_terms(parsed: StructuredQuery) -> list[str]:
    """Build catalog search terms from a parsed query."""
    terms: list[str] = list(parsed.categories)
    if parsed.purpose == "gaming":
        terms.append("gaming")
    terms.extend(parsed.brands)

    ram = parsed.specs.get("ram")
    if ram:
        terms.append(f"{ram}GB RAM")
    storage = parsed.specs.get("storage")
    if storage:
        terms.append(f"{storage['size']}{storage['unit']} {storage['type']}")

    return terms
