"""Runtime settings resolved from the environment with constant fallbacks."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Mapping

from exam_hall.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from exam_hall.constants.session_constants import (
    DEFAULT_DATABASE_URL,
    EXPIRY_SWEEP_INTERVAL_SECONDS,
)

_ENV_PREFIX = "EXAMHALL_"


@dataclass(frozen=True, slots=True)
class Settings:
    """Deployment values read once at startup."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    database_url: str = DEFAULT_DATABASE_URL
    sweep_interval_seconds: int = EXPIRY_SWEEP_INTERVAL_SECONDS


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from ``EXAMHALL_*`` variables, ignoring blanks."""
    source = os.environ if environ is None else environ

    def _read(name: str) -> str | None:
        value = source.get(_ENV_PREFIX + name, "").strip()
        return value or None

    return Settings(
        host=_read("HOST") or DEFAULT_HOST,
        port=_read_int(_read("PORT"), DEFAULT_PORT, "PORT"),
        database_url=_read("DATABASE_URL") or DEFAULT_DATABASE_URL,
        sweep_interval_seconds=_read_int(
            _read("SWEEP_INTERVAL"), EXPIRY_SWEEP_INTERVAL_SECONDS, "SWEEP_INTERVAL"
        ),
    )


def _read_int(raw_value: str | None, default: int, name: str) -> int:
    if raw_value is None:
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer.") from exc
    if parsed <= 0:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a positive integer.")
    return parsed
