"""Failure taxonomy for the dispatch pipeline.

Every failure that reaches the coordinator boundary is rendered by
`error_result` into the same message-only error payload. JSON-RPC error codes
are only emitted by the stdio transport, for messages it cannot hand to the
coordinator at all.
"""

from __future__ import annotations

from mcp_shell.types import ToolResult

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INVALID_PARAMS = -32602

_UNKNOWN_MESSAGE = "Unknown error occurred"


class ShellError(Exception):
    """Base class for failures raised inside the request pipeline."""


class NotFoundError(ShellError):
    """Unknown tool, resource or method name."""


class RateLimitExceeded(ShellError):
    """The client's sliding window is already at the configured ceiling."""

    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message)


class HandlerFailure(ShellError):
    """The invoked capability itself failed."""


class InvalidRequestError(HandlerFailure):
    pass


class AuthenticationError(HandlerFailure):
    pass


class InternalFailure(ShellError):
    """Unexpected condition inside the pipeline itself."""


def error_message(exc: BaseException) -> str:
    return str(exc) or _UNKNOWN_MESSAGE


def error_result(exc: BaseException) -> ToolResult:
    return ToolResult.error(f"Error: {error_message(exc)}")
