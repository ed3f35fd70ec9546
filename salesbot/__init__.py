"""
Salesbot shopping assistant core.

Responsibilities:
- Turn free-text shopping requests into structured queries.
- Learn a shopper's budget, category, brand, spec and purpose preferences.
- Filter and rank candidate products, via an LLM scorer or a local fallback.
"""
