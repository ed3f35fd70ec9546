"""
Keyword rule tables for query understanding.

Each table maps a canonical key to the substrings that signal it. Iteration
order matters: categories and brands are reported in table order, and the
first purpose with a matching keyword wins.

Tables can be overridden from a JSON file with the same top-level keys
(``categories``, ``brands``, ``purposes``); keys missing from the file keep
their defaults.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "processor": ["processor", "cpu", "intel", "amd", "ryzen", "core i3", "core i5", "core i7", "core i9"],
    "graphics_card": ["graphics card", "gpu", "geforce", "radeon", "rtx", "gtx", "rx", "video card"],
    "motherboard": ["motherboard", "mobo", "mainboard", "board"],
    "ram": ["ram", "memory", "ddr4", "ddr5"],
    "storage": ["ssd", "hdd", "hard drive", "nvme", "storage", "disk"],
    "power_supply": ["power supply", "psu", "smps"],
    "case": ["case", "cabinet", "tower", "chassis"],
    "cooling": ["cooler", "fan", "liquid cooling", "aio", "cooling"],
    "monitor": ["monitor", "display", "screen", "lcd", "led"],
    "keyboard": ["keyboard", "mechanical keyboard"],
    "mouse": ["mouse", "gaming mouse"],
    "laptop": ["laptop", "notebook"],
    "desktop": ["desktop", "pc", "computer", "gaming pc", "workstation"],
}

BRAND_KEYWORDS: dict[str, list[str]] = {
    "intel": ["intel"],
    "amd": ["amd", "ryzen"],
    "nvidia": ["nvidia", "geforce", "rtx", "gtx"],
    "asus": ["asus"],
    "msi": ["msi"],
    "gigabyte": ["gigabyte"],
    "corsair": ["corsair"],
    "gskill": ["g.skill", "gskill"],
    "samsung": ["samsung"],
    "western_digital": ["wd", "western digital"],
    "seagate": ["seagate"],
    "hp": ["hp", "hewlett packard"],
    "dell": ["dell"],
    "lenovo": ["lenovo"],
    "acer": ["acer"],
}

PURPOSE_KEYWORDS: dict[str, list[str]] = {
    "gaming": ["gaming", "game", "gamer", "fps", "esports"],
    "work": ["work", "office", "business", "productivity", "professional"],
    "programming": ["programming", "coding", "development", "developer", "software"],
    "content_creation": ["video editing", "content creation", "streaming", "youtube", "creator"],
    "study": ["study", "student", "education", "learning"],
    "home": ["home", "family", "basic", "everyday"],
}

GRAPHICS_KEYWORDS: list[str] = ["gaming", "gpu", "graphics"]

DEFAULT_PURPOSE = "general"


@dataclass(frozen=True)
class RuleTables:
    categories: dict[str, list[str]] = field(default_factory=lambda: dict(CATEGORY_KEYWORDS))
    brands: dict[str, list[str]] = field(default_factory=lambda: dict(BRAND_KEYWORDS))
    purposes: dict[str, list[str]] = field(default_factory=lambda: dict(PURPOSE_KEYWORDS))
    graphics: list[str] = field(default_factory=lambda: list(GRAPHICS_KEYWORDS))


DEFAULT_RULES = RuleTables()


def _normalize_table(raw: object, name: str) -> dict[str, list[str]]:
    if not isinstance(raw, dict):
        raise ValueError(f"rule table '{name}' must be an object")
    table: dict[str, list[str]] = {}
    for key, keywords in raw.items():
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise ValueError(f"rule table '{name}' entry '{key}' must be a list of strings")
        table[str(key)] = [k.lower() for k in keywords]
    return table


def load_rules(path: Path | None) -> RuleTables:
    """Load rule tables from a JSON file, falling back to the defaults.

    Raises ``ValueError`` when the file exists but is malformed.
    """
    if path is None:
        return DEFAULT_RULES
    if not path.is_file():
        logger.warning("Rule file %s not found, using default rule tables", path)
        return DEFAULT_RULES

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("rule file must contain a JSON object")

    overrides: dict[str, object] = {}
    for name in ("categories", "brands", "purposes"):
        if name in data:
            overrides[name] = _normalize_table(data[name], name)
    if "graphics" in data:
        graphics = data["graphics"]
        if not isinstance(graphics, list) or not all(isinstance(k, str) for k in graphics):
            raise ValueError("rule table 'graphics' must be a list of strings")
        overrides["graphics"] = [k.lower() for k in graphics]

    return RuleTables(**overrides)  # type: ignore[arg-type]
