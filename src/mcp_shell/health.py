"""Process health sampling with an optional background monitor."""

from __future__ import annotations

import asyncio
import gc
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import psutil

from mcp_shell.types import HealthSnapshot, MemoryUsage

logger = logging.getLogger("mcp_shell.health")

DEFAULT_INTERVAL_SECONDS = 30.0
DEFAULT_MEMORY_THRESHOLD_BYTES = 500 * 1024 * 1024


def process_memory() -> MemoryUsage:
    """Resident set size of this process against total physical memory."""
    return MemoryUsage(
        used=psutil.Process().memory_info().rss,
        total=psutil.virtual_memory().total,
    )


class HealthSampler:
    """Samples process vitals on demand and, while running, on a fixed cadence.

    `sample()` always computes a fresh snapshot and never depends on the
    background loop. The loop keeps its own copy in `latest`; when that copy is
    unhealthy it asks the garbage collector to run and logs a warning. The two
    views may be taken at slightly different instants.

    Lifecycle is Stopped -> Running -> Stopped; `stop()` on a stopped sampler
    is a no-op.
    """

    def __init__(
        self,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        memory_threshold_bytes: int = DEFAULT_MEMORY_THRESHOLD_BYTES,
        tool_flags: Mapping[str, bool] | None = None,
        memory_probe: Callable[[], MemoryUsage] = process_memory,
        collect_fn: Callable[[], int] = gc.collect,
        monotonic_fn: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.interval_seconds = interval_seconds
        self.memory_threshold_bytes = memory_threshold_bytes
        self._tool_flags = dict(tool_flags or {})
        self._memory_probe = memory_probe
        self._collect_fn = collect_fn
        self._monotonic_fn = monotonic_fn
        self._sleep_fn = sleep_fn
        self._started_at = monotonic_fn()
        self._task: asyncio.Task | None = None
        self._latest: HealthSnapshot | None = None
        self._tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    @property
    def latest(self) -> HealthSnapshot | None:
        """Most recent snapshot taken by the background loop, if any."""
        return self._latest

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def sample(self) -> HealthSnapshot:
        memory = self._memory_probe()
        status = "healthy" if memory.used < self.memory_threshold_bytes else "unhealthy"
        return HealthSnapshot(
            status=status,
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime_seconds=max(0.0, self._monotonic_fn() - self._started_at),
            memory=memory,
            tools=dict(self._tool_flags),
        )

    def is_healthy(self) -> bool:
        return self.sample().healthy

    async def start(self) -> bool:
        if self._task is not None:
            return False
        self._task = asyncio.create_task(self._run_loop(), name="mcp-shell-health-sampler")
        logger.info("Health sampler started (interval=%.1fs)", self.interval_seconds)
        return True

    async def stop(self) -> bool:
        task = self._task
        if task is None:
            return False
        self._task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Health sampler stopped")
        return True

    async def check_once(self) -> HealthSnapshot:
        """Run one monitoring pass: refresh `latest` and react if unhealthy."""
        snapshot = self.sample()
        self._latest = snapshot
        self._tick_count += 1
        if not snapshot.healthy:
            logger.warning("Health check failed: %s", snapshot.to_payload())
            collected = self._collect_fn()
            logger.info("Triggered garbage collection (%d objects collected)", collected)
        return snapshot

    async def _run_loop(self) -> None:
        while True:
            await self._sleep_fn(self.interval_seconds)
            try:
                await self.check_once()
            except Exception:
                logger.exception("Health sampling pass failed")
