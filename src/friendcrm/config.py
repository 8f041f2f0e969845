"""
Application settings, read from the environment (and a local .env file).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from friendcrm.errors import ConfigError

DEFAULT_DB_PATH = Path.home() / ".friendcrm" / "friendcrm.db"


@dataclass
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    timezone: str = "America/New_York"
    tick_time: str = "09:00"
    priority_days: int = 14
    normal_days: int = 28
    event_lookahead_days: int = 14
    notify_timeout: float = 10.0
    sendgrid_api_key: str = ""
    from_email: str = ""
    to_email: str = ""
    subject_prefix: str = "CRM: "
    scheduler_enabled: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone: {self.timezone!r}") from exc
        parse_tick_time(self.tick_time)
        for name in ("priority_days", "normal_days", "event_lookahead_days"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.notify_timeout <= 0:
            raise ConfigError("notify_timeout must be positive")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def tick_at(self) -> time:
        return parse_tick_time(self.tick_time)


def parse_tick_time(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock time."""
    try:
        hour, minute = value.split(":")
        return time(int(hour), int(minute))
    except ValueError as exc:
        raise ConfigError(f"Invalid tick time {value!r}, expected HH:MM") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    return Settings(
        db_path=Path(os.environ.get("FRIENDCRM_DB", "") or DEFAULT_DB_PATH).expanduser(),
        timezone=os.environ.get("FRIENDCRM_TIMEZONE", "") or "America/New_York",
        tick_time=os.environ.get("FRIENDCRM_TICK_TIME", "") or "09:00",
        priority_days=_env_int("FRIENDCRM_PRIORITY_DAYS", 14),
        normal_days=_env_int("FRIENDCRM_NORMAL_DAYS", 28),
        event_lookahead_days=_env_int("FRIENDCRM_EVENT_LOOKAHEAD_DAYS", 14),
        notify_timeout=_env_float("FRIENDCRM_NOTIFY_TIMEOUT", 10.0),
        sendgrid_api_key=os.environ.get("SENDGRID_API_KEY", ""),
        from_email=os.environ.get("SENDGRID_FROM_EMAIL", ""),
        to_email=os.environ.get("FRIENDCRM_TO_EMAIL", ""),
        subject_prefix=os.environ.get("FRIENDCRM_SUBJECT_PREFIX", "CRM: "),
        scheduler_enabled=_env_bool("FRIENDCRM_SCHEDULER", False),
        log_level=os.environ.get("FRIENDCRM_LOG_LEVEL", "") or "INFO",
    )
