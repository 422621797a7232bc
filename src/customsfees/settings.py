"""Environment-driven configuration for the customs fee engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from customsfees.countries import normalize_country

logger = logging.getLogger(__name__)

DISPLAY_SINGLE = "single"
DISPLAY_BREAKDOWN = "breakdown"
DISPLAY_MODES = (DISPLAY_SINGLE, DISPLAY_BREAKDOWN)

CACHE_BACKENDS = ("memory", "redis", "none")

DEFAULT_CACHE_TTL = 300
DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def normalize_display_mode(value: str | None) -> str:
    mode = (value or DISPLAY_SINGLE).strip().lower()
    if mode not in DISPLAY_MODES:
        logger.warning("Unknown display mode %r, falling back to %s", value, DISPLAY_SINGLE)
        return DISPLAY_SINGLE
    return mode


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class FeeSettings:
    """Resolved settings shared by the CLI and the evaluation service."""

    data_root: Path = Path(".")
    display_mode: str = DISPLAY_SINGLE
    default_origin: str = ""
    cache_backend: str = "memory"
    cache_ttl: int = DEFAULT_CACHE_TTL
    redis_url: str = DEFAULT_REDIS_URL

    @property
    def rules_path(self) -> Path:
        return self.data_root / "data" / "rules.json"

    @classmethod
    def from_env(cls) -> "FeeSettings":
        backend = os.getenv("CUSTOMS_FEES_CACHE_BACKEND", "memory").strip().lower()
        if backend not in CACHE_BACKENDS:
            logger.warning("Unknown cache backend %r, using memory", backend)
            backend = "memory"
        return cls(
            data_root=Path(os.getenv("CUSTOMS_FEES_DATA_ROOT", ".")),
            display_mode=normalize_display_mode(os.getenv("CUSTOMS_FEES_DISPLAY_MODE")),
            default_origin=normalize_country(os.getenv("CUSTOMS_FEES_DEFAULT_ORIGIN", "")),
            cache_backend=backend,
            cache_ttl=_int_env("CUSTOMS_FEES_CACHE_TTL", DEFAULT_CACHE_TTL),
            redis_url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL),
        )
