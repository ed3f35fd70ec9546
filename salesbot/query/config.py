from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class QueryConfig:
    rules_path: Path | None = (
        Path(os.environ["SALESBOT_RULES_PATH"]) if os.getenv("SALESBOT_RULES_PATH") else None
    )


DEFAULT_QUERY_CONFIG = QueryConfig()
