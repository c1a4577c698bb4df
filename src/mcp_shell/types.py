"""Shared domain models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Literal

ContentType = Literal["text", "image", "resource"]
HealthStatus = Literal["healthy", "unhealthy"]


@dataclass(frozen=True, slots=True)
class Request:
    """One decoded inbound call, immutable for the duration of its dispatch."""

    method: str
    params: Mapping[str, Any]
    timestamp: datetime
    client_id: str = "default"
    api_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params or {})))


@dataclass(frozen=True, slots=True)
class ContentPart:
    """A typed payload part of a tool result."""

    type: ContentType
    text: str | None = None
    data: str | None = None
    mime_type: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.text is not None:
            payload["text"] = self.text
        if self.data is not None:
            payload["data"] = self.data
        if self.mime_type is not None:
            payload["mimeType"] = self.mime_type
        return payload


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Complete outcome of a tool call; either a success or an error payload."""

    content: tuple[ContentPart, ...]
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=(ContentPart(type="text", text=text),))

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=(ContentPart(type="text", text=message),), is_error=True)

    def to_payload(self) -> dict[str, Any]:
        return {
            "content": [part.to_payload() for part in self.content],
            "isError": self.is_error,
        }


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """A readable resource advertised in discovery responses."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str = "text/plain"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.description is not None:
            payload["description"] = self.description
        payload["mimeType"] = self.mime_type
        return payload


@dataclass(frozen=True, slots=True)
class MemoryUsage:
    """Process memory in bytes: resident set size against physical memory."""

    used: int
    total: int


@dataclass(frozen=True, slots=True)
class HealthSnapshot:
    """Point-in-time read of process vitals."""

    status: HealthStatus
    timestamp: str
    uptime_seconds: float
    memory: MemoryUsage
    tools: dict[str, bool] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "uptime": self.uptime_seconds,
            "memory": {"used": self.memory.used, "total": self.memory.total},
            "tools": dict(self.tools),
        }


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    arguments: dict[str, Any]
    is_error: bool
    latency_ms: float


def to_wire(result: Any) -> Any:
    """Render a coordinator result into plain JSON-compatible values."""

    if isinstance(result, (ToolResult, HealthSnapshot, ResourceDescriptor, ContentPart)):
        return result.to_payload()
    if isinstance(result, Mapping):
        return {key: to_wire(value) for key, value in result.items()}
    if isinstance(result, (list, tuple)):
        return [to_wire(item) for item in result]
    return result
