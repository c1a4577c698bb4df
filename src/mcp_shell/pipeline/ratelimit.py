"""Per-client sliding-window admission control."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger("mcp_shell.pipeline.ratelimit")

WINDOW_SECONDS = 60.0


@dataclass(slots=True)
class _ClientWindow:
    lock: threading.Lock = field(default_factory=threading.Lock)
    admissions: list[float] = field(default_factory=list)
    # Set once the window has been dropped from the limiter; holders must look it up again.
    retired: bool = False

    def prune(self, cutoff: float) -> None:
        self.admissions = [stamp for stamp in self.admissions if stamp > cutoff]


class SlidingWindowRateLimiter:
    """Admits at most `requests_per_minute` calls per client in any trailing window.

    The count-then-record step runs under a per-client lock, so simultaneous
    checks for one client can never both observe the same under-limit count.
    Distinct clients never contend with each other.

    Windows whose admissions have all expired are swept at most once per
    window length, so memory follows the number of recently active clients.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        *,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ceiling = 0
        self._window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _ClientWindow] = {}
        self._windows_lock = threading.Lock()
        self._last_sweep: float | None = None
        self.configure(requests_per_minute)

    @property
    def requests_per_minute(self) -> int:
        return self._ceiling

    @property
    def tracked_clients(self) -> int:
        """Number of clients currently holding a window."""
        return len(self._windows)

    def configure(self, requests_per_minute: int) -> None:
        if requests_per_minute < 0:
            raise ValueError("requests_per_minute must be >= 0")
        self._ceiling = requests_per_minute

    def check_and_record(self, client_id: str, now: float | None = None) -> bool:
        """Record an admission for `client_id` unless its window is full.

        Returns True when admitted and False when rejected; a rejected call
        leaves the window untouched.
        """

        while True:
            window = self._window_for(client_id)
            with window.lock:
                if window.retired:
                    continue
                stamp = self._clock() if now is None else now
                window.prune(stamp - self._window_seconds)
                admitted = len(window.admissions) < self._ceiling
                if admitted:
                    window.admissions.append(stamp)
                else:
                    logger.debug(
                        "Rejected request for client=%s (%d/%d in window)",
                        client_id,
                        len(window.admissions),
                        self._ceiling,
                    )
            break

        self._maybe_sweep(stamp)
        return admitted

    def window_size(self, client_id: str, now: float | None = None) -> int:
        """Number of admissions inside the trailing window for `client_id`."""

        with self._windows_lock:
            window = self._windows.get(client_id)
        if window is None:
            return 0
        with window.lock:
            if window.retired:
                return 0
            stamp = self._clock() if now is None else now
            window.prune(stamp - self._window_seconds)
            return len(window.admissions)

    def reset(self, client_id: str | None = None) -> None:
        with self._windows_lock:
            if client_id is None:
                dropped = list(self._windows.values())
                self._windows.clear()
            else:
                window = self._windows.pop(client_id, None)
                dropped = [window] if window is not None else []
        for window in dropped:
            window.retired = True

    def _window_for(self, client_id: str) -> _ClientWindow:
        with self._windows_lock:
            window = self._windows.get(client_id)
            if window is None:
                window = _ClientWindow()
                self._windows[client_id] = window
            return window

    def _maybe_sweep(self, now: float) -> None:
        with self._windows_lock:
            if self._last_sweep is None:
                self._last_sweep = now
                return
            if now - self._last_sweep < self._window_seconds:
                return
            self._last_sweep = now
            cutoff = now - self._window_seconds
            swept = 0
            for client_id, window in list(self._windows.items()):
                # A window in use by another caller is left for the next sweep.
                if not window.lock.acquire(blocking=False):
                    continue
                try:
                    window.prune(cutoff)
                    if not window.admissions:
                        window.retired = True
                        del self._windows[client_id]
                        swept += 1
                finally:
                    window.lock.release()
        if swept:
            logger.debug("Dropped %d idle rate-limit windows", swept)
