"""Readable resources advertised alongside tools."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from typing import Any

from mcp_shell.errors import NotFoundError
from mcp_shell.types import ResourceDescriptor

ResourceReader = Callable[[], str]


class ResourceRegistry:
    """Maps resource URIs to descriptors and content readers.

    Updates swap in a fresh mapping, matching the tool registry.
    """

    def __init__(self) -> None:
        self._resources: Mapping[str, tuple[ResourceDescriptor, ResourceReader]] = {}
        self._write_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._resources)

    def register(self, descriptor: ResourceDescriptor, reader: ResourceReader) -> None:
        with self._write_lock:
            self._resources = {**self._resources, descriptor.uri: (descriptor, reader)}

    def list_resources(self) -> list[ResourceDescriptor]:
        return [descriptor for descriptor, _ in self._resources.values()]

    def read(self, uri: str) -> dict[str, Any]:
        entry = self._resources.get(uri)
        if entry is None:
            raise NotFoundError(f"Resource not found: {uri}")
        descriptor, reader = entry
        return {
            "contents": [
                {
                    "uri": uri,
                    "mimeType": descriptor.mime_type,
                    "text": reader(),
                }
            ]
        }
