import pytest

from mcp_shell.errors import (
    AuthenticationError,
    INVALID_PARAMS,
    INVALID_REQUEST,
    PARSE_ERROR,
    HandlerFailure,
    InternalFailure,
    InvalidRequestError,
    NotFoundError,
    RateLimitExceeded,
    ShellError,
    error_result,
)
from mcp_shell.types import ToolResult


@pytest.mark.parametrize(
    "exc",
    [
        NotFoundError("Tool 'x' not found"),
        RateLimitExceeded(),
        HandlerFailure("disk full"),
        InvalidRequestError("Missing required parameter 'uri' for resources/read"),
        AuthenticationError("Unauthorized: Invalid API key"),
        InternalFailure("unexpected"),
    ],
)
def test_every_failure_renders_as_message_only_error(exc: ShellError) -> None:
    result = error_result(exc)

    assert result.is_error
    assert result.to_payload() == {
        "content": [{"type": "text", "text": f"Error: {exc}"}],
        "isError": True,
    }


def test_empty_message_falls_back_to_unknown_error() -> None:
    assert error_result(InternalFailure()) == ToolResult.error("Error: Unknown error occurred")


def test_rate_limit_default_message() -> None:
    assert str(RateLimitExceeded()) == "Rate limit exceeded"


def test_successful_result_payload_shape() -> None:
    assert ToolResult.text("ok").to_payload() == {
        "content": [{"type": "text", "text": "ok"}],
        "isError": False,
    }


def test_protocol_error_codes_match_json_rpc() -> None:
    assert (PARSE_ERROR, INVALID_REQUEST, INVALID_PARAMS) == (-32700, -32600, -32602)
