"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "orchestrator.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

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


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass
class Settings:
    """Runtime settings read from the environment."""

    db_path: PathLike = DEFAULT_DB_PATH
    log_level: str = "INFO"
    message_log_size: int = 1000
    lock_ttl_seconds: float = 30.0
    schema_refresh_seconds: float = 3600.0
    heartbeat_grace_seconds: float | None = None
    max_budget_usd: float = 5.0
    llm_model: str = "claude-3-5-sonnet-20241022"
    api_host: str = "localhost"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (call load_dotenv first)."""
        grace = os.getenv("HEARTBEAT_GRACE_SECONDS")
        return cls(
            db_path=resolve_db_path(os.getenv("DATABASE_URL")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            message_log_size=int(os.getenv("MESSAGE_LOG_SIZE", "1000")),
            lock_ttl_seconds=_env_float("LOCK_TTL_SECONDS", 30.0),
            schema_refresh_seconds=_env_float("SCHEMA_REFRESH_SECONDS", 3600.0),
            heartbeat_grace_seconds=float(grace) if grace else None,
            max_budget_usd=_env_float("MAX_BUDGET_USD", 5.0),
            llm_model=os.getenv("LLM_MODEL", "claude-3-5-sonnet-20241022"),
            api_host=os.getenv("API_HOST", "localhost"),
            api_port=int(os.getenv("API_PORT", "8000")),
        )
