"""
Central configuration loader.
Reads from environment variables (via .env) with sensible local defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Load .env from repo root (if present)
# ---------------------------------------------------------------------------
_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env")


def _get(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    val = os.getenv(key, default)
    if required and not val:
        raise EnvironmentError(f"Missing required environment variable: {key}")
    return val


# ---------------------------------------------------------------------------
# Store config
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class StoreConfig:
    db_path: Path
    journal_mode: str
    log_level: str

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == ":memory:"


def get_store_config() -> StoreConfig:
    return StoreConfig(
        db_path=get_db_path(),
        journal_mode=_get("RECIPE_STORE_JOURNAL_MODE", default="WAL").upper(),  # type: ignore[union-attr]
        log_level=_get("RECIPE_STORE_LOG_LEVEL", default="INFO").upper(),  # type: ignore[union-attr]
    )


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
def get_repo_root() -> Path:
    return _REPO_ROOT


def get_db_path() -> Path:
    override = _get("RECIPE_STORE_DB_PATH")
    if override:
        return Path(override)
    return _REPO_ROOT / "data" / "recipes.db"
