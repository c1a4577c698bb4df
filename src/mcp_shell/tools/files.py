"""Sandboxed file tools: one handler behind three tool names."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from mcp_shell.errors import HandlerFailure
from mcp_shell.tools.registry import ToolDefinition, ToolHandler
from mcp_shell.types import ToolResult


class ReadFileInput(BaseModel):
    path: str = Field(min_length=1, description="File path to read")


class WriteFileInput(BaseModel):
    path: str = Field(min_length=1, description="File path to write")
    content: str = Field(description="Content to write")


class ListDirectoryInput(BaseModel):
    path: str = Field(min_length=1, description="Directory path to list")


class FileAccessError(HandlerFailure):
    """Raised when a path falls outside the sandbox or has a blocked extension."""


class FileManagerTool(ToolHandler):
    """Reads, writes and lists files confined to a set of allowed roots.

    Relative paths resolve against `base_dir` (the working directory by
    default). Reads and writes are further limited to `allowed_extensions`.
    Blocking file-system work runs in a worker thread.
    """

    def __init__(
        self,
        allowed_paths: list[str] | None = None,
        *,
        allowed_extensions: list[str] | None = None,
        base_dir: str | Path | None = None,
    ) -> None:
        self.base_dir = Path(base_dir or Path.cwd()).resolve()
        self.allowed_roots = [
            (self.base_dir / root).resolve() for root in (allowed_paths or ["./data", "./temp"])
        ]
        self.allowed_extensions = {
            ext.lower() for ext in (allowed_extensions or [".txt", ".json", ".md"])
        }
        self._operations = {
            "read_file": (ReadFileInput, self._read_file, "reading file"),
            "write_file": (WriteFileInput, self._write_file, "writing file"),
            "list_directory": (ListDirectoryInput, self._list_directory, "listing directory"),
        }

    def definitions(self) -> list[ToolDefinition]:
        return [
            ToolDefinition(
                name="read_file",
                description="Read a text file from an allowed directory.",
                args_schema=ReadFileInput,
            ),
            ToolDefinition(
                name="write_file",
                description="Write a text file inside an allowed directory.",
                args_schema=WriteFileInput,
            ),
            ToolDefinition(
                name="list_directory",
                description="List the entries of an allowed directory.",
                args_schema=ListDirectoryInput,
            ),
        ]

    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        operation = self._operations.get(name)
        if operation is None:
            return ToolResult.error(f"Error: Unknown file operation: {name}")
        schema, func, label = operation

        raw_path = arguments.get("path", "")
        try:
            data = schema.model_validate(arguments)
            text = await asyncio.to_thread(func, data)
        except ValidationError as exc:
            return ToolResult.error(f"Error {label}: {raw_path}: invalid arguments: {_first_error(exc)}")
        except (FileAccessError, OSError) as exc:
            return ToolResult.error(f"Error {label}: {raw_path}: {_describe(exc)}")
        return ToolResult.text(text)

    def validate_path(self, user_path: str) -> Path:
        resolved = (self.base_dir / user_path).resolve()
        if not any(resolved.is_relative_to(root) for root in self.allowed_roots):
            raise FileAccessError(f"Access denied: Path {user_path} is not in allowed directories")
        return resolved

    def _check_extension(self, path: Path) -> None:
        if path.suffix.lower() not in self.allowed_extensions:
            raise FileAccessError(f"File extension '{path.suffix}' is not allowed")

    def _read_file(self, data: ReadFileInput) -> str:
        path = self.validate_path(data.path)
        self._check_extension(path)
        content = path.read_text(encoding="utf-8")
        stats = path.stat()
        return (
            f"File: {data.path}\n"
            f"Size: {stats.st_size} bytes\n"
            f"Modified: {_iso_mtime(stats.st_mtime)}\n\n"
            f"Content:\n{content}"
        )

    def _write_file(self, data: WriteFileInput) -> str:
        path = self.validate_path(data.path)
        self._check_extension(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data.content, encoding="utf-8")
        return f"Successfully wrote {len(data.content)} characters to {data.path}"

    def _list_directory(self, data: ListDirectoryInput) -> str:
        path = self.validate_path(data.path)
        lines: list[str] = []
        for entry in sorted(path.iterdir(), key=lambda item: item.name):
            stats = entry.stat()
            kind = "directory" if entry.is_dir() else "file"
            lines.append(
                f"[{kind}] {entry.name} ({stats.st_size} bytes, {_iso_mtime(stats.st_mtime)})"
            )
        header = f"Directory: {data.path}\nTotal items: {len(lines)}\n\n"
        return header + "\n".join(lines)


def _iso_mtime(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _describe(exc: Exception) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return str(exc)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}"
