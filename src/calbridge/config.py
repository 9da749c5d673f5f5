from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import os
from pathlib import Path

from calbridge.errors import EXIT_USAGE, InvalidTimestamp
from calbridge.timecodec import parse_timestamp


class ConfigError(ValueError):
    kind = "ConfigError"
    exit_code = EXIT_USAGE

    def to_payload(self) -> dict[str, object]:
        return {"error": str(self), "kind": self.kind, "success": False}


@dataclass(frozen=True)
class Config:
    store_backend: str
    store_file: Path
    default_calendar: str
    access_denied: bool
    auth_timeout_seconds: float | None
    log_level: int
    now_override: datetime | None


STORE_BACKENDS = ("auto", "eventkit", "file")
DEFAULT_STORE_FILE = "~/.local/state/calendar-bridge/events.json"
DEFAULT_CALENDAR = "Calendar"


def _normalize_path(path_value: str) -> Path:
    return Path(os.path.expandvars(path_value)).expanduser().resolve()


def _auth_timeout(raw: str) -> float | None:
    if not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(
            f"CALBRIDGE_AUTH_TIMEOUT_SECONDS must be a number of seconds, got {raw!r}."
        ) from exc
    if value <= 0:
        raise ConfigError("CALBRIDGE_AUTH_TIMEOUT_SECONDS must be positive.")
    return value


def _log_level(raw: str) -> int:
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        raise ConfigError(f"CALBRIDGE_LOG_LEVEL is not a logging level: {raw!r}.")
    return level


def _now_override(raw: str) -> datetime | None:
    if not raw.strip():
        return None
    try:
        return parse_timestamp(raw, field="CALBRIDGE_NOW_ISO")
    except InvalidTimestamp as exc:
        raise ConfigError(str(exc)) from exc


def load_config(env: dict[str, str] | None = None) -> Config:
    effective_env = dict(os.environ if env is None else env)

    backend = effective_env.get("CALBRIDGE_STORE", "auto").strip().lower() or "auto"
    if backend not in STORE_BACKENDS:
        raise ConfigError(
            "CALBRIDGE_STORE must be one of: " + ", ".join(STORE_BACKENDS) + f" (got {backend!r})."
        )

    return Config(
        store_backend=backend,
        store_file=_normalize_path(effective_env.get("CALBRIDGE_STORE_FILE") or DEFAULT_STORE_FILE),
        default_calendar=effective_env.get("CALBRIDGE_DEFAULT_CALENDAR") or DEFAULT_CALENDAR,
        access_denied=effective_env.get("CALBRIDGE_ACCESS_DENIED") == "1",
        auth_timeout_seconds=_auth_timeout(effective_env.get("CALBRIDGE_AUTH_TIMEOUT_SECONDS", "")),
        log_level=_log_level(effective_env.get("CALBRIDGE_LOG_LEVEL") or "WARNING"),
        now_override=_now_override(effective_env.get("CALBRIDGE_NOW_ISO", "")),
    )
