"""
Preference learning.

Responsibilities:
- Record confidence-weighted budget, category, brand, spec and purpose preferences.
- Keep a bounded history of the current session's queries.
- Persist both records and notify listeners after every change.
- Derive contextual insights from a preference snapshot.
"""
