"""Per-transport health bookkeeping."""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Transport(str, Enum):
    MODERN = "modern"
    LEGACY = "legacy"
    DEGRADED = "degraded"


@dataclass(slots=True)
class BackendHealth:
    """Health of one backend transport.

    Only the invoker mutates these. A failure is sticky until the next
    successful call through the same transport.
    """

    transport: Transport
    healthy: bool = True
    last_failure_at: Optional[float] = None
    last_error: Optional[str] = None
    failures: int = 0

    def mark_healthy(self) -> None:
        self.healthy = True
        self.last_error = None

    def mark_failed(self, error: BaseException, *, now: Optional[float] = None) -> None:
        self.healthy = False
        self.last_failure_at = now if now is not None else time.time()
        self.last_error = str(error)
        self.failures += 1

    def accepts_calls(self, now: float, retry_after_seconds: float) -> bool:
        """True when healthy, or unhealthy long enough to be probed again."""
        if self.healthy:
            return True
        if self.last_failure_at is None:
            return True
        return now - self.last_failure_at >= retry_after_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transport": self.transport.value,
            "healthy": self.healthy,
            "lastFailureAt": self.last_failure_at,
            "lastError": self.last_error,
            "failures": self.failures,
        }
