"""Call timing and in-memory tool-call trace accounting."""

from __future__ import annotations

import threading
import time
from collections import deque

from mcp_shell.types import ToolTrace


class ToolTraceStore:
    """Bounded in-memory store of dispatched tool calls.

    Installed as the registry's dispatch observer so diagnostics surfaces can
    report what ran, how long it took and whether it failed.
    """

    def __init__(self, capacity: int = 500) -> None:
        self._records: deque[ToolTrace] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, trace: ToolTrace) -> None:
        with self._lock:
            self._records.append(trace)

    def list_recent(self, limit: int = 20) -> list[ToolTrace]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._records)[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate call counts and latency for dashboard display."""
        with self._lock:
            records = list(self._records)
        total = len(records)
        if total == 0:
            return {
                "total_calls": 0,
                "error_calls": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_calls": total,
            "error_calls": sum(1 for record in records if record.is_error),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
        }


class Timer:
    """Simple context timer around a tool invocation."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
