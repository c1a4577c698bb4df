import json
from pathlib import Path

import pytest
from pydantic import BaseModel

from mcp_shell.config import ServerConfig
from mcp_shell.coordinator import PROTOCOL_VERSION, RequestCoordinator
from mcp_shell.tools.registry import FunctionTool, ToolDefinition
from mcp_shell.types import ToolResult


class AnyInput(BaseModel):
    pass


def _config(**security: object) -> ServerConfig:
    config = ServerConfig()
    for key, value in security.items():
        setattr(config.security, key, value)
    return config


def _register(coordinator: RequestCoordinator, name: str, func) -> None:
    coordinator.registry.register_handler(
        FunctionTool(ToolDefinition(name=name, description=name, args_schema=AnyInput), func)
    )


@pytest.mark.asyncio
async def test_unknown_tool_yields_error_result(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    result = await coordinator.handle("tools/call", {"name": "missing", "arguments": {}})

    assert isinstance(result, ToolResult)
    assert result.is_error
    assert "not found" in result.content[0].text


@pytest.mark.asyncio
async def test_handler_result_passes_through_unchanged(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)
    expected = ToolResult.text("exact payload")

    async def _handler(arguments: dict) -> ToolResult:
        return expected

    _register(coordinator, "exact", _handler)

    assert await coordinator.handle("tools/call", {"name": "exact"}) is expected


@pytest.mark.asyncio
async def test_handler_exception_becomes_error_result(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    async def _boom(arguments: dict) -> ToolResult:
        raise RuntimeError("boom")

    _register(coordinator, "boom", _boom)
    result = await coordinator.handle("tools/call", {"name": "boom"})

    assert result == ToolResult.error("Error: boom")
    assert coordinator.trace_store.summary()["error_calls"] == 1


@pytest.mark.asyncio
async def test_rate_limit_rejects_third_call(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(_config(rate_limit_rpm=2), base_dir=tmp_path)
    params = {"name": "calculate", "arguments": {"expression": "1 + 1"}}

    first = await coordinator.handle("tools/call", params)
    second = await coordinator.handle("tools/call", params)
    third = await coordinator.handle("tools/call", params)
    other_client = await coordinator.handle("tools/call", params, client_id="other")

    assert first == ToolResult.text("Result: 1 + 1 = 2")
    assert not second.is_error
    assert third == ToolResult.error("Error: Rate limit exceeded")
    assert not other_client.is_error


@pytest.mark.asyncio
async def test_builtin_tools_are_listed(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    listing = await coordinator.handle("tools/list")

    names = [tool["name"] for tool in listing["tools"]]
    assert names == ["calculate", "read_file", "write_file", "list_directory"]
    assert listing["tools"][0]["inputSchema"]["required"] == ["expression"]


@pytest.mark.asyncio
async def test_disabled_family_is_not_registered(tmp_path: Path) -> None:
    config = ServerConfig()
    config.tools.file_manager.enabled = False
    coordinator = RequestCoordinator(config, base_dir=tmp_path)

    assert coordinator.registry.names() == ["calculate"]
    assert coordinator.sampler.sample().tools == {"calculator": True, "file_manager": False}


@pytest.mark.asyncio
async def test_file_tools_through_pipeline(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    write = await coordinator.handle(
        "tools/call",
        {"name": "write_file", "arguments": {"path": "temp/a.txt", "content": "abc"}},
    )
    read = await coordinator.handle(
        "tools/call",
        {"name": "read_file", "arguments": {"path": "temp/a.txt"}},
    )

    assert not write.is_error
    assert read.content[0].text.endswith("Content:\nabc")


@pytest.mark.asyncio
async def test_resources_are_listed_and_readable(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(_config(api_key="top-secret"), base_dir=tmp_path)

    listing = await coordinator.handle("resources/list", api_key="top-secret")
    uris = [resource["uri"] for resource in listing["resources"]]
    assert uris == ["config://server.json", "logs://recent.txt", "health://status.json"]

    config_read = await coordinator.handle(
        "resources/read", {"uri": "config://server.json"}, api_key="top-secret"
    )
    content = config_read["contents"][0]
    assert content["mimeType"] == "application/json"
    rendered = json.loads(content["text"])
    assert rendered["server"]["name"] == "mcp-shell"
    assert "api_key" not in rendered["security"]

    health_read = await coordinator.handle(
        "resources/read", {"uri": "health://status.json"}, api_key="top-secret"
    )
    assert json.loads(health_read["contents"][0]["text"])["status"] in {"healthy", "unhealthy"}

    logs_read = await coordinator.handle(
        "resources/read", {"uri": "logs://recent.txt"}, api_key="top-secret"
    )
    assert logs_read["contents"][0]["mimeType"] == "text/plain"


@pytest.mark.asyncio
async def test_recent_logs_resource_reflects_tool_calls(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    await coordinator.handle("tools/call", {"name": "calculate", "arguments": {"expression": "2 + 2"}})
    logs_read = await coordinator.handle("resources/read", {"uri": "logs://recent.txt"})

    text = logs_read["contents"][0]["text"]
    assert text != ""
    assert "INFO: Executing tool: calculate" in text


@pytest.mark.asyncio
async def test_unknown_resource_and_method(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    missing = await coordinator.handle("resources/read", {"uri": "nope://x"})
    unknown = await coordinator.handle("does/not/exist")

    assert missing == ToolResult.error("Error: Resource not found: nope://x")
    assert unknown == ToolResult.error("Error: Method not found: does/not/exist")


@pytest.mark.asyncio
async def test_api_key_is_enforced(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(_config(api_key="top-secret"), base_dir=tmp_path)

    denied = await coordinator.handle("ping")
    allowed = await coordinator.handle("ping", api_key="top-secret")

    assert denied == ToolResult.error("Error: Unauthorized: Invalid API key")
    assert allowed == {}


@pytest.mark.asyncio
async def test_missing_tool_name_is_rejected_before_dispatch(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    result = await coordinator.handle("tools/call", {"arguments": {}})

    assert result.is_error
    assert "Missing required parameter 'name'" in result.content[0].text
    assert coordinator.trace_store.summary()["total_calls"] == 0


@pytest.mark.asyncio
async def test_initialize_reports_server_info(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    result = await coordinator.handle("initialize", {})

    assert result["protocolVersion"] == PROTOCOL_VERSION
    assert result["serverInfo"] == {"name": "mcp-shell", "version": "1.0.0"}


@pytest.mark.asyncio
async def test_start_and_repeated_shutdown(tmp_path: Path) -> None:
    coordinator = RequestCoordinator(base_dir=tmp_path)

    await coordinator.start()
    assert coordinator.sampler.running

    await coordinator.shutdown()
    await coordinator.shutdown()
    assert not coordinator.sampler.running
