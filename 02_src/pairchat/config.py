"""Project-level configuration and path helpers."""

import os
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "pairchat.db"
DEFAULT_LOG_PATH = LOGS_DIR / "pairchat.log"

# Matching
DEFAULT_MATCH_MAX_ATTEMPTS = 3
DEFAULT_PENDING_TTL_SECONDS = 30

# Notifications
DEFAULT_BOT_API_URL = "https://api.telegram.org"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def env_int(name: str, default: int, minimum: int = 1) -> int:
    """Read a positive integer setting from the environment."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default

    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e

    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value
