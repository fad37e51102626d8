"""
Session metrics with Prometheus text exposition.

Counters track how often the client had to repair its session: refresh
exchanges, retried requests, forced logouts and raw 401s seen.
"""

from __future__ import annotations

import time
from collections import Counter
from typing import Any

PREFIX = "tm_client"

COUNTERS = (
    "refresh_exchanges_total",
    "requests_retried_total",
    "forced_logouts_total",
    "auth_failures_total",
)


class MetricsCollector:
    """Monotonic counters for one client instance."""

    def __init__(self, prefix: str = PREFIX) -> None:
        self._prefix = prefix
        self._counts: Counter[str] = Counter({name: 0 for name in COUNTERS})
        self._start_time = time.time()

    def inc(self, name: str, value: int = 1) -> None:
        self._counts[name] += value

    def get(self, name: str) -> int:
        return self._counts.get(name, 0)

    def to_prometheus(self) -> str:
        """Export all counters in Prometheus text format."""
        lines = []
        for name, value in sorted(self._counts.items()):
            full = f"{self._prefix}_{name}"
            lines.append(f"# TYPE {full} counter")
            lines.append(f"{full} {value}")
        lines.append(f"# TYPE {self._prefix}_uptime_seconds gauge")
        lines.append(f"{self._prefix}_uptime_seconds {time.time() - self._start_time:.1f}")
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "counters": dict(self._counts),
            "uptime_seconds": time.time() - self._start_time,
        }
