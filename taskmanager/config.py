"""Configuration loading for the task manager service."""
from __future__ import annotations

import logging
import os
import re
import secrets
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_database_path

logger = logging.getLogger("taskmanager.config")

DEFAULT_TOKEN_TTL = timedelta(days=7)
STORE_BACKENDS = ("sqlite", "memory")
DEFAULT_CORS_ORIGINS = ("*",)

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_duration(value: object) -> timedelta:
    """Parse ``7d``, ``12h``, ``30m``, ``45s`` or a bare number of seconds."""

    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        match = _DURATION_PATTERN.match(str(value))
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        amount, unit = match.groups()
        seconds = timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)}).total_seconds()
    if seconds <= 0:
        raise ValueError("Duration must be positive")
    return timedelta(seconds=seconds)


def parse_origins(value: object) -> Tuple[str, ...]:
    """Accept a list of origins or a comma-separated string of them."""

    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError(f"Invalid CORS origins: {value!r}")
    return tuple(item.strip().rstrip("/") for item in items if item.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API process."""

    database_path: Path
    token_secret: str
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    store: str = "sqlite"
    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS

    @property
    def debug(self) -> bool:
        return self.environment == "development"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_path = data.get("database_path")
        if raw_path:
            path = Path(str(raw_path)).expanduser()
            if not path.is_absolute() and base_path is not None:
                path = base_path / path
            database_path = path.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        store = str(data.get("store", "sqlite")).strip().lower()
        if store not in STORE_BACKENDS:
            raise ValueError(f"Unknown store backend '{store}'")

        token_secret = data.get("token_secret")
        if not token_secret:
            logger.warning("No token secret configured; tokens will not survive a restart")
            token_secret = secrets.token_urlsafe(32)

        return Settings(
            database_path=database_path,
            token_secret=str(token_secret),
            token_ttl=parse_duration(data.get("token_ttl", DEFAULT_TOKEN_TTL)),
            store=store,
            environment=str(data.get("environment", "production")).strip().lower(),
            host=str(data.get("host", "0.0.0.0")),
            port=int(data.get("port", 3000)),  # type: ignore[arg-type]
            cors_origins=parse_origins(data.get("cors_origins", DEFAULT_CORS_ORIGINS)),
        )


_ENV_OVERRIDES: Dict[str, str] = {
    "TASKMANAGER_DB_PATH": "database_path",
    "TASKMANAGER_STORE": "store",
    "TASKMANAGER_TOKEN_SECRET": "token_secret",
    "TASKMANAGER_TOKEN_TTL": "token_ttl",
    "TASKMANAGER_ENV": "environment",
    "TASKMANAGER_HOST": "host",
    "TASKMANAGER_PORT": "port",
    "TASKMANAGER_CORS_ORIGINS": "cors_origins",
}


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when present) and apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("TASKMANAGER_CONFIG"))

    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")
        raw.update(loaded)

    for variable, key in _ENV_OVERRIDES.items():
        value = env.get(variable)
        if value is not None and value.strip():
            raw[key] = value.strip()
            if key == "database_path":
                raw[key] = str(resolve_database_path(value.strip()))

    if "environment" not in raw and _env_flag(env.get("TASKMANAGER_DEBUG")):
        raw["environment"] = "development"

    return Settings.from_dict(raw, base_path=path.parent)


def with_overrides(settings: Settings, **changes: object) -> Settings:
    return replace(settings, **changes)


__all__ = [
    "DEFAULT_CORS_ORIGINS",
    "DEFAULT_TOKEN_TTL",
    "Settings",
    "load_settings",
    "parse_duration",
    "parse_origins",
    "resolve_config_path",
    "with_overrides",
]
