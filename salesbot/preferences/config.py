from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class StoreConfig:
    data_dir: Path = Path(
        os.getenv("SALESBOT_DATA_DIR", str(Path(__file__).resolve().parent.parent / "data"))
    )
    preferences_record: str = "learned_preferences"
    context_record: str = "current_context"
    max_session_queries: int = 10
    max_browsed_products: int = 20


DEFAULT_STORE_CONFIG = StoreConfig()
