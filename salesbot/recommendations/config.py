from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FunnelConfig:
    max_candidates: int = 20
    fallback_limit: int = 5
    # One-sided: "around X" admits prices up to X * (1 + tolerance), no lower bound.
    around_tolerance: float = 0.2


DEFAULT_FUNNEL_CONFIG = FunnelConfig()
