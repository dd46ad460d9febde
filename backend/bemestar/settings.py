from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

_ENV_LOADED = False

_settings_logger = logging.getLogger("bemestar.settings")

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)


def _candidate_env_files() -> list[Path]:
    here = Path(__file__).resolve()
    found: list[Path] = []
    for path in (Path.cwd() / ".env", here.parents[1] / ".env", here.parents[2] / ".env"):
        if path not in found:
            found.append(path)
    return found


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[7:].strip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        value = value[1:-1]
    return key, value


def load_env() -> None:
    """Populate os.environ from the first .env files found; real env vars win."""
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    _ENV_LOADED = True

    for env_path in _candidate_env_files():
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is None:
                continue
            key, value = parsed
            current = os.getenv(key)
            if current is None or not current.strip():
                os.environ[key] = value


def env_str(name: str, default: str | None = None) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or default


def env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        _settings_logger.warning("Invalid %s=%s (expected int); using %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        _settings_logger.warning("Invalid %s=%s (min %s); using %s.", name, raw, min_value, default)
        return default
    return value


def env_bool(name: str, default: bool = False) -> bool:
    raw = env_str(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    cors_origins: list[str]
    log_level: str = "INFO"
    log_file: str | None = None
    log_http_requests: bool = True

    advisory_allow_mock: bool = False
    advisory_window_days: int = 7
    advisory_max_notes: int = 30
    advisory_note_max_chars: int = 220
    advisory_fetch_limit: int = 80

    dashboard_daily_days: int = 30
    dashboard_alert_days: int = 7
    dashboard_alert_limit: int = 10

    @classmethod
    def from_env(cls) -> "Settings":
        origins = env_str("CORS_ORIGINS")
        cors_origins = (
            [o.strip() for o in origins.split(",") if o.strip()] if origins else list(DEFAULT_CORS_ORIGINS)
        )
        return cls(
            cors_origins=cors_origins,
            log_level=(env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
            log_file=env_str("LOG_FILE"),
            log_http_requests=env_bool("LOG_HTTP_REQUESTS", True),
            advisory_allow_mock=env_bool("ADVISORY_ALLOW_MOCK", False),
            advisory_window_days=env_int("ADVISORY_WINDOW_DAYS", 7, min_value=1),
            advisory_max_notes=env_int("ADVISORY_MAX_NOTES", 30, min_value=1),
            advisory_note_max_chars=env_int("ADVISORY_NOTE_MAX_CHARS", 220, min_value=1),
            advisory_fetch_limit=env_int("ADVISORY_FETCH_LIMIT", 80, min_value=1),
            dashboard_daily_days=env_int("DASHBOARD_DAILY_DAYS", 30, min_value=1),
            dashboard_alert_days=env_int("DASHBOARD_ALERT_DAYS", 7, min_value=1),
            dashboard_alert_limit=env_int("DASHBOARD_ALERT_LIMIT", 10, min_value=1),
        )


load_env()
settings = Settings.from_env()
