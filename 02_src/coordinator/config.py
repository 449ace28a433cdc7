"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "hackathon_coordinator.db"
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
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_optional_float(name: str) -> float | None:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class ModelSettings:
    """Model name per agent role."""

    processor: str = "gpt-5-mini"
    decision_engine: str = "o4-mini"
    roadmap_orchestrator: str = "gemini-2.5-pro"
    repository_scanner: str = "gemini-1.5-pro"
    user_compiler: str = "gemini-2.5-flash"
    progress_coordinator: str = "claude-3-5-sonnet-20241022"
    edit_coordinator: str = "claude-3-5-sonnet-20241022"
    code_extractor: str = "gpt-5-nano"


@dataclass
class Settings:
    """Runtime settings. Intervals are in seconds."""

    api_host: str = "localhost"
    api_port: int = 8000
    models: ModelSettings = field(default_factory=ModelSettings)

    # Timers
    intake_poll_interval: float = 0.1
    decision_interval: float = 10.0
    coordination_interval: float = 30.0
    health_interval: float = 30.0
    core_scan_interval: float = 60.0
    user_monitor_interval: float = 60.0
    roadmap_interval: float = 300.0
    temp_scanner_ttl: float = 300.0
    token_flush_interval: float = 300.0

    # Limits
    history_size: int = 1000
    processor_pending_limit: int = 5
    max_scanners: int = 8
    error_storm_threshold: int = 50
    request_timeout: float = 30.0
    # USD per hour; None disables budget alerts
    token_hourly_budget: float | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (after load_dotenv)."""
        return cls(
            api_host=os.getenv("API_HOST", "localhost"),
            api_port=_env_int("API_PORT", 8000),
            intake_poll_interval=_env_float("INTAKE_POLL_INTERVAL", 0.1),
            decision_interval=_env_float("DECISION_INTERVAL", 10.0),
            coordination_interval=_env_float("COORDINATION_INTERVAL", 30.0),
            health_interval=_env_float("HEALTH_INTERVAL", 30.0),
            core_scan_interval=_env_float("CORE_SCAN_INTERVAL", 60.0),
            user_monitor_interval=_env_float("USER_MONITOR_INTERVAL", 60.0),
            roadmap_interval=_env_float("ROADMAP_INTERVAL", 300.0),
            temp_scanner_ttl=_env_float("TEMP_SCANNER_TTL", 300.0),
            token_flush_interval=_env_float("TOKEN_FLUSH_INTERVAL", 300.0),
            token_hourly_budget=_env_optional_float("TOKEN_HOURLY_BUDGET"),
            history_size=_env_int("BUS_HISTORY_SIZE", 1000),
            error_storm_threshold=_env_int("ERROR_STORM_THRESHOLD", 50),
        )
