# src/taskhub/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Local overrides via config_local.py for a handful of switches.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKHUB"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_number(name: str, default, cast):
    """Parse a numeric env var; blank or malformed values fall back to default."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


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
    relay_enabled: bool

    # ---- Notification relay ----
    relay_interval_seconds: float
    relay_batch_limit: int

    # ---- Task core ----
    max_write_attempts: int
    reject_dependency_cycles: bool

    # ---- Console session ----
    default_user_id: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    notifications_db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskhub").strip() or "taskhub"
        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        relay_enabled = _env_bool(_k("RELAY_ENABLED"), True)

        relay_interval_seconds = max(0.01, _env_float(_k("RELAY_INTERVAL_SECONDS"), 5.0))
        relay_batch_limit = max(1, _env_int(_k("RELAY_BATCH_LIMIT"), 32))

        max_write_attempts = max(1, _env_int(_k("MAX_WRITE_ATTEMPTS"), 3))
        reject_dependency_cycles = _env_bool(_k("REJECT_DEPENDENCY_CYCLES"), False)

        default_user_id = _env(_k("DEFAULT_USER_ID"), "").strip()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskhub"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        notifications_db_path = _env_path(
            _k("NOTIFICATIONS_DB_PATH"), data_dir / "notifications.sqlite3"
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            relay_enabled=relay_enabled,
            relay_interval_seconds=relay_interval_seconds,
            relay_batch_limit=relay_batch_limit,
            max_write_attempts=max_write_attempts,
            reject_dependency_cycles=reject_dependency_cycles,
            default_user_id=default_user_id,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            notifications_db_path=notifications_db_path,
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# config_local.py may flip these switches only; everything else comes from the environment.
_LOCAL_SWITCHES = {
    "CONSOLE_ENABLED": "console_enabled",
    "RELAY_ENABLED": "relay_enabled",
    "REJECT_DEPENDENCY_CYCLES": "reject_dependency_cycles",
}

try:
    import config_local as _config_local  # type: ignore
except ImportError:
    _config_local = None

if _config_local is not None:
    _overrides = {
        field_name: bool(getattr(_config_local, attr))
        for attr, field_name in _LOCAL_SWITCHES.items()
        if hasattr(_config_local, attr)
    }
    if _overrides:
        SETTINGS = replace(SETTINGS, **_overrides)


def get_settings() -> Settings:
    return SETTINGS
