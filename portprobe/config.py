from __future__ import annotations

import os
from typing import Callable, Dict, Mapping, Optional

from .errors import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Built-in defaults, each overridable through PORTPROBE_<NAME>
BUILTIN_DEFAULTS: Dict[str, object] = {
    "RANGE": "1-1024",
    "TIMEOUT": 1.0,
    "CONCURRENCY": 200,
    "SLOT_GRACE": 5.0,
    "LOG_LEVEL": "WARNING",
}


def _level(raw: str) -> str:
    level = raw.strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(raw)
    return level


_CASTS: Dict[str, Callable[[str], object]] = {
    "RANGE": str.strip,
    "TIMEOUT": float,
    "CONCURRENCY": int,
    "SLOT_GRACE": float,
    "LOG_LEVEL": _level,
}


def load_defaults(environ: Optional[Mapping[str, str]] = None) -> Dict[str, object]:
    """Returns BUILTIN_DEFAULTS with PORTPROBE_* environment overrides applied."""
    env = os.environ if environ is None else environ
    values = dict(BUILTIN_DEFAULTS)
    for name, cast in _CASTS.items():
        key = f"PORTPROBE_{name}"
        raw = env.get(key)
        if raw is None or raw == "":
            continue
        try:
            values[name] = cast(raw)
        except ValueError:
            raise ConfigError(f"Bad value for {key}: {raw!r}") from None
    return values
