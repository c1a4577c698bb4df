"""Request coordinator: middleware chain -> routing -> structured result."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mcp_shell.config import ServerConfig
from mcp_shell.errors import InternalFailure, NotFoundError, ShellError, error_message, error_result
from mcp_shell.health import HealthSampler
from mcp_shell.obs.logs import attach_recent_handler, recent_logs
from mcp_shell.obs.tracing import ToolTraceStore
from mcp_shell.pipeline.middleware import (
    MiddlewareChain,
    authentication_stage,
    logging_stage,
    rate_limit_stage,
    validation_stage,
)
from mcp_shell.pipeline.ratelimit import SlidingWindowRateLimiter
from mcp_shell.resources import ResourceRegistry
from mcp_shell.tools.builtin import register_builtin_tools
from mcp_shell.tools.registry import ToolRegistry
from mcp_shell.types import Request, ResourceDescriptor, ToolResult

logger = logging.getLogger("mcp_shell.coordinator")

PROTOCOL_VERSION = "2024-11-05"


class RequestCoordinator:
    """Turns decoded `{method, params}` calls into results for the transport.

    Every call runs through the middleware chain with a terminal stage that
    routes by method. Any failure that escapes the chain is converted here,
    and only here, into an error `ToolResult`; nothing raised by a handler or
    stage ever reaches the transport.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        registry: ToolRegistry | None = None,
        resources: ResourceRegistry | None = None,
        chain: MiddlewareChain | None = None,
        limiter: SlidingWindowRateLimiter | None = None,
        sampler: HealthSampler | None = None,
        register_builtins: bool = True,
        base_dir: str | Path | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        attach_recent_handler(self.config.logging)
        self.registry = registry or ToolRegistry()
        self.trace_store = ToolTraceStore()
        self.registry.set_observer(self.trace_store.record)

        tool_flags: dict[str, bool] = {}
        if register_builtins:
            tool_flags = register_builtin_tools(
                self.registry,
                self.config.tools,
                self.config.security,
                base_dir=base_dir,
            )

        self.limiter = limiter or SlidingWindowRateLimiter(self.config.security.rate_limit_rpm)
        self.sampler = sampler or HealthSampler(
            interval_seconds=self.config.health.interval_seconds,
            memory_threshold_bytes=self.config.health.memory_threshold_bytes,
            tool_flags=tool_flags,
        )
        if chain is None:
            chain = MiddlewareChain()
            chain.use(logging_stage)
            chain.use(rate_limit_stage(self.limiter))
            chain.use(authentication_stage(self.config.security.api_key))
            chain.use(validation_stage)
        self.chain = chain

        self.resources = resources or ResourceRegistry()
        if resources is None:
            self._register_default_resources()

        self._routes: dict[str, Callable[[Request], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
        }

    async def start(self) -> None:
        await self.sampler.start()
        logger.info(
            "%s %s started successfully",
            self.config.server.name,
            self.config.server.version,
        )

    async def shutdown(self) -> None:
        logger.info("Stopping %s...", self.config.server.name)
        await self.sampler.stop()

    async def handle(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        *,
        client_id: str = "default",
        api_key: str | None = None,
    ) -> Any:
        """Run one request through the pipeline and return its result."""

        request = Request(
            method=method,
            params=params or {},
            timestamp=datetime.now(timezone.utc),
            client_id=client_id,
            api_key=api_key,
        )
        try:
            return await self.chain.execute(request, self._route)
        except ShellError as exc:
            logger.debug("Request %s failed: %s", method, exc)
            return error_result(exc)
        except Exception as exc:
            logger.exception("Internal failure while handling %s", method)
            return error_result(InternalFailure(error_message(exc)))

    async def _route(self, request: Request) -> Any:
        route = self._routes.get(request.method)
        if route is None:
            raise NotFoundError(f"Method not found: {request.method}")
        return await route(request)

    async def _initialize(self, request: Request) -> dict[str, Any]:
        return {
            "protocolVersion": request.params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": True},
                "resources": {"subscribe": False, "listChanged": True},
                "logging": {},
            },
            "serverInfo": {
                "name": self.config.server.name,
                "version": self.config.server.version,
            },
        }

    async def _ping(self, request: Request) -> dict[str, Any]:
        return {}

    async def _list_tools(self, request: Request) -> dict[str, Any]:
        return {"tools": [definition.to_payload() for definition in self.registry.list_definitions()]}

    async def _call_tool(self, request: Request) -> ToolResult:
        name = request.params.get("name")
        arguments = request.params.get("arguments") or {}
        logger.info("Executing tool: %s", name)
        result = await self.registry.dispatch(name, arguments)
        if result.is_error:
            logger.warning("Tool %s reported an error", name)
        else:
            logger.info("Tool %s executed successfully", name)
        return result

    async def _list_resources(self, request: Request) -> dict[str, Any]:
        return {"resources": [descriptor.to_payload() for descriptor in self.resources.list_resources()]}

    async def _read_resource(self, request: Request) -> dict[str, Any]:
        return self.resources.read(request.params.get("uri"))

    def _register_default_resources(self) -> None:
        self.resources.register(
            ResourceDescriptor(
                uri="config://server.json",
                name="Server Configuration",
                description="Current server configuration",
                mime_type="application/json",
            ),
            self._render_config,
        )
        self.resources.register(
            ResourceDescriptor(
                uri="logs://recent.txt",
                name="Recent Logs",
                description="Recent server logs",
                mime_type="text/plain",
            ),
            recent_logs,
        )
        self.resources.register(
            ResourceDescriptor(
                uri="health://status.json",
                name="Health Status",
                description="Current server health status",
                mime_type="application/json",
            ),
            lambda: json.dumps(self.sampler.sample().to_payload(), indent=2),
        )
        logger.info("Initialized %d resources", len(self.resources))

    def _render_config(self) -> str:
        payload = self.config.model_dump(exclude={"security": {"api_key"}})
        return json.dumps(payload, indent=2)
