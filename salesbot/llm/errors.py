from __future__ import annotations


class ScorerError(Exception):
    """The external scorer could not produce a ranking."""


class ScorerCredentialMissing(ScorerError):
    """No API key is configured for the scorer."""


class ScorerTransientFailure(ScorerError):
    """Network error, timeout, non-success status or malformed response."""
