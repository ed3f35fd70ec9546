"""
Query understanding.

Responsibilities:
- Parse free-text shopping requests into a StructuredQuery.
- Keep keyword rule tables as editable data.
"""
