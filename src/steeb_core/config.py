# src/steeb_core/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every tunable of the scheduler and stores lives here, nothing is read from env elsewhere.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "STEEB"

DEFAULT_PROBE_HOURS = [9, 11, 13, 16, 19, 21]


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_hours(name: str, default: list[int]) -> list[int]:
    """Comma/space separated list of hours; out-of-range or junk entries are dropped."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    hours: list[int] = []
    for part in raw.replace(",", " ").split():
        try:
            h = int(part)
        except ValueError:
            continue
        if 0 <= h <= 23:
            hours.append(h)
    return hours or list(default)


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    push_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_path: Path
    engagement_db_path: Path
    push_db_path: Path

    # ---- Push delivery ----
    push_relay_url: str
    push_relay_token: str | None
    push_request_timeout_seconds: float
    push_click_url: str

    # ---- Adaptive scheduler ----
    push_timezone: str
    push_daily_minute: int
    push_tick_seconds: float
    push_probe_hours: list[int]
    push_min_learning_events: int

    # ---- Stores ----
    engagement_decay_threshold: int
    task_tree_max_depth: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "steeb") or "steeb"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        push_enabled = _env_bool(_k("PUSH_ENABLED"), False)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/steeb"))
        tasks_path = _env_path(_k("TASKS_PATH"), data_dir / "tasks.json")
        engagement_db_path = _env_path(_k("ENGAGEMENT_DB_PATH"), data_dir / "engagement.sqlite3")
        push_db_path = _env_path(_k("PUSH_DB_PATH"), data_dir / "push.sqlite3")

        push_relay_url = _env(_k("PUSH_RELAY_URL"), "").strip()
        push_relay_token = _env(_k("PUSH_RELAY_TOKEN"), "").strip() or None
        push_request_timeout_seconds = _env_float(_k("PUSH_REQUEST_TIMEOUT_SECONDS"), 10.0)
        push_click_url = _env(_k("PUSH_CLICK_URL"), "/") or "/"

        push_timezone = _env(_k("PUSH_TIMEZONE"), "America/Argentina/Buenos_Aires").strip()
        push_daily_minute = min(59, max(0, _env_int(_k("PUSH_DAILY_MINUTE"), 0)))
        push_tick_seconds = _env_float(_k("PUSH_TICK_SECONDS"), 60.0)
        push_probe_hours = _env_hours(_k("PUSH_PROBE_HOURS"), DEFAULT_PROBE_HOURS)
        push_min_learning_events = _env_int(_k("PUSH_MIN_LEARNING_EVENTS"), 3)

        engagement_decay_threshold = _env_int(_k("ENGAGEMENT_DECAY_THRESHOLD"), 1000)
        task_tree_max_depth = _env_int(_k("TASK_TREE_MAX_DEPTH"), 3)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            push_enabled=push_enabled,
            data_dir=data_dir,
            tasks_path=tasks_path,
            engagement_db_path=engagement_db_path,
            push_db_path=push_db_path,
            push_relay_url=push_relay_url,
            push_relay_token=push_relay_token,
            push_request_timeout_seconds=push_request_timeout_seconds,
            push_click_url=push_click_url,
            push_timezone=push_timezone,
            push_daily_minute=push_daily_minute,
            push_tick_seconds=push_tick_seconds,
            push_probe_hours=push_probe_hours,
            push_min_learning_events=push_min_learning_events,
            engagement_decay_threshold=engagement_decay_threshold,
            task_tree_max_depth=task_tree_max_depth,
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env for secrets; use config_local.py only for safe overrides.
try:
    import config_local as _config_local  # type: ignore

    if hasattr(_config_local, "CONSOLE_ENABLED"):
        object.__setattr__(SETTINGS, "console_enabled", bool(_config_local.CONSOLE_ENABLED))  # type: ignore[misc]
    if hasattr(_config_local, "PUSH_ENABLED"):
        object.__setattr__(SETTINGS, "push_enabled", bool(_config_local.PUSH_ENABLED))  # type: ignore[misc]
except Exception:
    pass


def get_settings() -> Settings:
    return SETTINGS
