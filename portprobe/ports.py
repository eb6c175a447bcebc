from __future__ import annotations

import re
from typing import List, Optional

from .errors import InvalidPort, InvalidRange

MIN_PORT = 1
MAX_PORT = 65535
DEFAULT_RANGE = "1-1024"

_RANGE = re.compile(r"^([0-9]+)-([0-9]+)$")


def _port_from_token(token: str) -> int:
    t = token.strip()
    if not t.isdigit() or not t.isascii():
        raise InvalidPort(token)
    p = int(t)
    if p < MIN_PORT or p > MAX_PORT:
        raise InvalidPort(token, f"Port out of range [{MIN_PORT}, {MAX_PORT}]: {t}")
    return p


def parse_port_list(spec: str) -> List[int]:
    """
    Parses an explicit list such as "22,80,443".
    Order is kept and duplicates are not removed.
    """
    if spec is None or not spec.strip():
        raise InvalidPort(spec or "", "Empty port list")
    return [_port_from_token(part) for part in spec.split(",")]


def parse_port_range(spec: str) -> List[int]:
    """Parses "start-end" into the inclusive ascending run of ports."""
    m = _RANGE.match((spec or "").strip())
    if not m:
        raise InvalidRange(spec or "", f"Invalid range format: {spec!r}")
    start, end = int(m.group(1)), int(m.group(2))
    if start < MIN_PORT or end > MAX_PORT or start > end:
        raise InvalidRange(spec)
    return list(range(start, end + 1))


def build_port_sequence(ports: Optional[str] = None, port_range: Optional[str] = None) -> List[int]:
    # explicit list wins over range
    if ports is not None:
        return parse_port_list(ports)
    return parse_port_range(port_range if port_range is not None else DEFAULT_RANGE)
