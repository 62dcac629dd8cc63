"""Application configuration and constants."""
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_bool_env(name: str, default: bool) -> bool:
    """Parse boolean flag (1/true/yes/on) from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Database
DB_DIR = Path(os.environ.get("DB_DIR", Path.cwd() / "data"))
DB_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DB_DIR / 'delivery.db'}"
)

# Remote authoring API (catalog database is used when unset)
CONTENT_API_URL = os.environ.get("CONTENT_API_URL", "").strip() or None
CONTENT_API_TIMEOUT_SECONDS = _parse_int_env("CONTENT_API_TIMEOUT_SECONDS", 10)

# Delivery
RESERVE_MISSING_SLOTS = _parse_bool_env("RESERVE_MISSING_SLOTS", False)
SESSION_AUTOTICK = _parse_bool_env("SESSION_AUTOTICK", True)
SESSION_IDLE_MINUTES = _parse_int_env("SESSION_IDLE_MINUTES", 180)
SESSION_CLEANUP_INTERVAL_SECONDS = _parse_int_env(
    "SESSION_CLEANUP_INTERVAL_SECONDS", 5 * 60
)
