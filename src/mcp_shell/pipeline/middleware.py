"""Ordered interceptor chain wrapped around request dispatch."""

from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

from mcp_shell.errors import AuthenticationError, InvalidRequestError, RateLimitExceeded
from mcp_shell.pipeline.ratelimit import SlidingWindowRateLimiter
from mcp_shell.types import Request

logger = logging.getLogger("mcp_shell.pipeline.middleware")

Next = Callable[[], Awaitable[Any]]
Stage = Callable[[Request, Next], Awaitable[Any]]
Terminal = Callable[[Request], Awaitable[Any]]

_REQUIRED_PARAMS = {
    "tools/call": "name",
    "resources/read": "uri",
}


class MiddlewareChain:
    """Runs stages in registration order around a terminal handler.

    Each stage receives the request and a `call_next` continuation bound to
    the rest of the chain. A stage that returns without awaiting `call_next`
    short-circuits everything after it. Failures are not caught here: they
    unwind through the awaiting stages like an ordinary call stack.
    """

    def __init__(self, stages: list[Stage] | None = None) -> None:
        self._stages: tuple[Stage, ...] = tuple(stages or ())

    def __len__(self) -> int:
        return len(self._stages)

    def use(self, stage: Stage) -> None:
        # Swap in a new tuple so executions already in flight keep their snapshot.
        self._stages = (*self._stages, stage)

    async def execute(self, request: Request, terminal: Terminal) -> Any:
        stages = self._stages

        async def _call(index: int) -> Any:
            if index >= len(stages):
                return await terminal(request)
            return await stages[index](request, lambda: _call(index + 1))

        return await _call(0)


async def logging_stage(request: Request, call_next: Next) -> Any:
    """Log start, completion and failure of every request with its duration."""

    started = request.timestamp.isoformat()
    logger.info("[%s] Starting %s", started, request.method)
    start = perf_counter()
    try:
        result = await call_next()
    except Exception as exc:
        logger.error(
            "[%s] Failed %s in %.1fms: %s",
            started,
            request.method,
            (perf_counter() - start) * 1000.0,
            exc,
        )
        raise
    logger.info(
        "[%s] Completed %s in %.1fms",
        started,
        request.method,
        (perf_counter() - start) * 1000.0,
    )
    return result


def rate_limit_stage(limiter: SlidingWindowRateLimiter) -> Stage:
    """Reject requests whose client has exhausted its window."""

    async def _rate_limit(request: Request, call_next: Next) -> Any:
        if not limiter.check_and_record(request.client_id):
            logger.warning("Rate limit exceeded for client=%s", request.client_id)
            raise RateLimitExceeded()
        return await call_next()

    return _rate_limit


def authentication_stage(expected_key: str | None) -> Stage:
    """Require the request's API key to match `expected_key` when one is set."""

    async def _authenticate(request: Request, call_next: Next) -> Any:
        if expected_key:
            supplied = request.api_key or ""
            if not hmac.compare_digest(supplied.encode("utf-8"), expected_key.encode("utf-8")):
                raise AuthenticationError("Unauthorized: Invalid API key")
        return await call_next()

    return _authenticate


async def validation_stage(request: Request, call_next: Next) -> Any:
    """Reject calls that lack the parameter their method routes on."""

    required = _REQUIRED_PARAMS.get(request.method)
    if required is not None and not request.params.get(required):
        raise InvalidRequestError(f"Missing required parameter '{required}' for {request.method}")
    return await call_next()
