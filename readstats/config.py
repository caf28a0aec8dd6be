from __future__ import annotations

from dataclasses import dataclass, replace
import json
import logging
import os
from datetime import tzinfo
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .db import default_db_path
from .storage import default_state_path

logger = logging.getLogger(__name__)

SETTINGS_DIR_NAME = ".readstats"
SETTINGS_FILE_NAME = "settings.json"

ENV_OVERRIDES = {
    "READSTATS_DB": "db_path",
    "READSTATS_STATE": "state_path",
    "READSTATS_USER": "user_id",
    "READSTATS_LOG_LEVEL": "log_level",
    "READSTATS_TZ": "timezone",
}


def _as_int(value: Any, default: int, minimum: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= minimum else default


@dataclass(frozen=True)
class Settings:
    db_path: str = str(default_db_path())
    state_path: str = str(default_state_path())
    user_id: str = "local"
    refresh_interval_sec: int = 30
    cache_max_age_sec: int = 300
    weekly_goal_minutes: int = 420
    log_level: str = "WARNING"
    # IANA zone name; empty means the machine's local zone.
    timezone: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "db_path": self.db_path,
            "state_path": self.state_path,
            "user_id": self.user_id,
            "refresh_interval_sec": self.refresh_interval_sec,
            "cache_max_age_sec": self.cache_max_age_sec,
            "weekly_goal_minutes": self.weekly_goal_minutes,
            "log_level": self.log_level,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Settings:
        defaults = cls()
        return cls(
            db_path=str(payload.get("db_path") or defaults.db_path),
            state_path=str(payload.get("state_path") or defaults.state_path),
            user_id=str(payload.get("user_id") or defaults.user_id).strip() or defaults.user_id,
            refresh_interval_sec=_as_int(payload.get("refresh_interval_sec"), defaults.refresh_interval_sec, 1),
            cache_max_age_sec=_as_int(payload.get("cache_max_age_sec"), defaults.cache_max_age_sec),
            weekly_goal_minutes=_as_int(payload.get("weekly_goal_minutes"), defaults.weekly_goal_minutes, 1),
            log_level=str(payload.get("log_level") or defaults.log_level).strip().upper(),
            timezone=str(payload.get("timezone") or "").strip(),
        )


def default_settings_path(home: Path | None = None) -> Path:
    base = home if home is not None else Path.home()
    return base / SETTINGS_DIR_NAME / SETTINGS_FILE_NAME


def load_settings(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    target = path or default_settings_path()
    payload: dict[str, Any] = {}
    if target.exists():
        try:
            with target.open("r", encoding="utf-8") as fp:
                loaded = json.load(fp)
            if isinstance(loaded, dict):
                payload = loaded
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable settings file %s: %s", target, exc)

    settings = Settings.from_dict(payload)
    env = os.environ if environ is None else environ
    overrides = {field: env[name].strip() for name, field in ENV_OVERRIDES.items() if env.get(name, "").strip()}
    if overrides:
        settings = Settings.from_dict({**settings.to_dict(), **overrides})
    return settings


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    target = path or default_settings_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_suffix(target.suffix + ".tmp")
    with temp_path.open("w", encoding="utf-8") as fp:
        json.dump(settings.to_dict(), fp, indent=2, ensure_ascii=False, sort_keys=True)
        fp.write("\n")
    temp_path.replace(target)
    return target


def with_overrides(settings: Settings, **values: Any) -> Settings:
    clean = {key: value for key, value in values.items() if value is not None}
    return replace(settings, **clean) if clean else settings


def resolve_zone(name: str) -> tzinfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        logger.warning("unknown timezone %r, using local time: %s", name, exc)
        return None
