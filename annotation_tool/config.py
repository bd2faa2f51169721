"""
Central configuration loader.
Reads from environment variables (via .env); validates required keys.
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
# Database config
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DatabaseConfig:
    path: Path
    timeout: float
    journal_mode: str


def get_database_config() -> DatabaseConfig:
    return DatabaseConfig(
        path=get_db_path(),
        timeout=float(_get("DB_TIMEOUT", default="5.0")),  # type: ignore[arg-type]
        journal_mode=_get("DB_JOURNAL_MODE", default="WAL").upper(),  # type: ignore[union-attr]
    )


# ---------------------------------------------------------------------------
# HTTP server config
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ServerConfig:
    host: str
    port: int
    reload: bool


def get_server_config() -> ServerConfig:
    return ServerConfig(
        host=_get("SERVER_HOST", default="0.0.0.0"),  # type: ignore[arg-type]
        port=int(_get("SERVER_PORT", default="8000")),  # type: ignore[arg-type]
        reload=_get("SERVER_RELOAD", default="false").lower() in ("1", "true", "yes"),  # type: ignore[union-attr]
    )


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------
def get_log_level() -> str:
    return _get("LOG_LEVEL", default="INFO").upper()  # type: ignore[union-attr]


def get_import_error_limit() -> int:
    """Maximum number of per-row error messages kept in a CSV import result."""
    return int(_get("IMPORT_ERROR_LIMIT", default="10"))  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
def get_db_path() -> Path:
    raw = _get("DATABASE_PATH")
    if raw:
        return Path(raw)
    return _REPO_ROOT / "data" / "annotations.db"


def get_seed_path() -> Path:
    raw = _get("SEED_PATH")
    if raw:
        return Path(raw)
    return _REPO_ROOT / "data" / "seeds" / "sample_data.yaml"
