from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from .errors import ConfigError

CANCELLED = "cancelled"


class Status(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class ScanOutcome:
    port: int
    status: Status
    reason: Optional[str] = None
    elapsed_s: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.status is Status.OPEN

    @property
    def is_cancelled(self) -> bool:
        return self.status is Status.ERROR and self.reason == CANCELLED


def _finite_number(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value)


@dataclass(frozen=True)
class ScanConfig:
    target: str
    timeout: float
    concurrency: int
    # extra seconds (on top of timeout) the dispatcher may wait for a free slot
    slot_grace: float = 5.0

    def __post_init__(self) -> None:
        if not isinstance(self.target, str) or not self.target.strip():
            raise ConfigError("Empty target")
        if not _finite_number(self.timeout) or self.timeout <= 0:
            raise ConfigError(f"Timeout must be a positive number of seconds, got {self.timeout!r}")
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ConfigError(f"Concurrency must be a positive integer, got {self.concurrency!r}")
        if not _finite_number(self.slot_grace) or self.slot_grace < 0:
            raise ConfigError(f"Slot grace must be >= 0, got {self.slot_grace!r}")


@dataclass(frozen=True)
class ScanReport:
    """
    Aggregate of one scan run.

    - outcomes: one per dispatched port, in completion order
    - unscanned: ports never dispatched (only non-empty after cancellation)
    """

    outcomes: Tuple[ScanOutcome, ...]
    unscanned: Tuple[int, ...] = ()
    cancelled: bool = False
    elapsed_s: float = 0.0
    target: str = ""
    address: Optional[str] = field(default=None, compare=False)

    @property
    def open_ports(self) -> FrozenSet[int]:
        return frozenset(o.port for o in self.outcomes if o.status is Status.OPEN)

    @property
    def closed_ports(self) -> FrozenSet[int]:
        return frozenset(o.port for o in self.outcomes if o.status is Status.CLOSED)

    @property
    def errors(self) -> Tuple[ScanOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status is Status.ERROR and not o.is_cancelled)

    @property
    def aborted(self) -> Tuple[int, ...]:
        return tuple(o.port for o in self.outcomes if o.is_cancelled)

    @property
    def undetermined(self) -> Tuple[int, ...]:
        return self.aborted + self.unscanned

    @property
    def complete(self) -> bool:
        return not self.cancelled and not self.undetermined
