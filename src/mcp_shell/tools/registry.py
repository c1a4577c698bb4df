"""Tool registry and name-based dispatch built on Pydantic v2 models."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict

from mcp_shell.errors import NotFoundError
from mcp_shell.obs.tracing import Timer
from mcp_shell.types import ToolResult, ToolTrace

logger = logging.getLogger("mcp_shell.tools.registry")


class ToolDefinition(BaseModel):
    """Declarative tool descriptor used for discovery responses.

    `args_schema` documents the expected arguments. The dispatcher does not
    enforce it; validating arguments is left to the handler.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]

    def input_schema(self) -> dict[str, Any]:
        schema = self.args_schema.model_json_schema()
        schema.pop("title", None)
        return schema

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


class ToolHandler(ABC):
    """A capability that serves one or more tool names."""

    @abstractmethod
    def definitions(self) -> list[ToolDefinition]:
        """Describe every tool name this handler can serve."""

    @abstractmethod
    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run the operation bound to `name`."""


class FunctionTool(ToolHandler):
    """Adapts a single coroutine function into a handler."""

    def __init__(
        self,
        definition: ToolDefinition,
        func: Callable[[dict[str, Any]], Awaitable[ToolResult]],
    ) -> None:
        self._definition = definition
        self._func = func

    def definitions(self) -> list[ToolDefinition]:
        return [self._definition]

    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        return await self._func(arguments)


@dataclass(frozen=True, slots=True)
class ToolRegistration:
    name: str
    handler: ToolHandler
    definition: ToolDefinition


class ToolRegistry:
    """Maps tool names to handlers and dispatches calls by name.

    Lookups read the current mapping without locking. Writers build a new
    mapping and swap it in, so a dispatch never observes a half-applied update.
    """

    def __init__(self) -> None:
        self._tools: Mapping[str, ToolRegistration] = {}
        self._write_lock = threading.Lock()
        self._observer: Callable[[ToolTrace], None] | None = None

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, name: str, handler: ToolHandler, definition: ToolDefinition) -> None:
        """Insert or replace the binding for `name`."""
        if not name:
            raise ValueError("Tool name must be a non-empty string")
        registration = ToolRegistration(name=name, handler=handler, definition=definition)
        with self._write_lock:
            if name in self._tools:
                logger.debug("Replacing tool registration: %s", name)
            self._tools = {**self._tools, name: registration}

    def register_handler(self, handler: ToolHandler) -> list[str]:
        """Register every definition a handler exposes under its own name."""
        names: list[str] = []
        for definition in handler.definitions():
            self.register(definition.name, handler, definition)
            names.append(definition.name)
        return names

    def unregister(self, name: str) -> bool:
        with self._write_lock:
            if name not in self._tools:
                return False
            self._tools = {key: value for key, value in self._tools.items() if key != name}
        return True

    def get(self, name: str) -> ToolRegistration | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_definitions(self) -> list[ToolDefinition]:
        return [registration.definition for registration in self._tools.values()]

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each dispatched call."""
        self._observer = observer

    async def dispatch(self, name: str, arguments: Mapping[str, Any] | None = None) -> ToolResult:
        registration = self._tools.get(name)
        if registration is None:
            raise NotFoundError(f"Tool '{name}' not found")
        return await self._execute(registration, dict(arguments or {}))

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for registration in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=registration.name,
                    description=registration.definition.description,
                    args_schema=registration.definition.args_schema,
                    coroutine=self._build_coroutine(registration.name),
                )
            )
        return tools

    def _build_coroutine(self, name: str) -> Callable[..., Awaitable[str]]:
        async def _callable(**kwargs: Any) -> str:
            result = await self.dispatch(name, kwargs)
            return "\n".join(part.text for part in result.content if part.text)

        return _callable

    async def _execute(self, registration: ToolRegistration, arguments: dict[str, Any]) -> ToolResult:
        timer = Timer()
        try:
            with timer:
                result = await registration.handler.invoke(registration.name, arguments)
        except BaseException:
            self._notify(registration.name, arguments, True, timer.elapsed_ms)
            raise
        self._notify(registration.name, arguments, result is None or result.is_error, timer.elapsed_ms)
        return result

    def _notify(self, name: str, arguments: dict[str, Any], is_error: bool, latency_ms: float) -> None:
        observer = self._observer
        if observer is None:
            return
        trace = ToolTrace(name=name, arguments=arguments, is_error=is_error, latency_ms=latency_ms)
        try:
            observer(trace)
        except Exception:
            # The call's own outcome wins over a failing observer.
            logger.exception("Tool observer failed for %s", name)
