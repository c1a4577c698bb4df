"""Newline-delimited JSON-RPC loop over a duplex byte stream."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import Any

from mcp_shell.coordinator import RequestCoordinator
from mcp_shell.errors import INVALID_PARAMS, INVALID_REQUEST, PARSE_ERROR
from mcp_shell.types import to_wire

logger = logging.getLogger("mcp_shell.api.stdio")

STREAM_LIMIT_BYTES = 16 * 1024 * 1024
_NOTIFICATION_PREFIX = "notifications/"


async def open_stdin_reader(limit: int = STREAM_LIMIT_BYTES) -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


def write_stdout(line: str) -> None:
    sys.stdout.write(line)
    sys.stdout.flush()


async def serve_stdio(
    coordinator: RequestCoordinator,
    reader: asyncio.StreamReader,
    write: Callable[[str], None] = write_stdout,
    *,
    client_id: str = "stdio",
) -> None:
    """Serve requests until the reader reaches EOF.

    Messages are decoded one at a time; each request is then handled in its
    own task so slow handlers do not block decoding. `notifications/*`
    messages without an id are acknowledged silently and never dispatched.
    Writes are serialised.
    Returns once EOF is seen and every in-flight request has replied.
    """

    write_lock = asyncio.Lock()
    pending: set[asyncio.Task] = set()

    async def _send(message: dict[str, Any]) -> None:
        serialized = json.dumps(message)
        async with write_lock:
            write(serialized + "\n")

    async def _send_error(msg_id: Any, code: int, text: str) -> None:
        await _send({"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": text}})

    async def _respond(message: dict[str, Any]) -> None:
        msg_id = message.get("id")
        params = message.get("params") or {}
        meta = params.get("_meta")
        api_key = meta.get("apiKey") if isinstance(meta, dict) else None
        result = await coordinator.handle(
            message["method"],
            params,
            client_id=client_id,
            api_key=api_key,
        )
        if msg_id is None:
            return
        await _send({"jsonrpc": "2.0", "id": msg_id, "result": to_wire(result)})

    def _finished(task: asyncio.Task) -> None:
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Failed to deliver reply", exc_info=task.exception())

    try:
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                logger.warning("Dropping inbound message larger than %d bytes", STREAM_LIMIT_BYTES)
                await _send_error(None, PARSE_ERROR, "Parse error")
                continue
            if not line:
                break
            if not line.strip():
                continue

            try:
                message = json.loads(line)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning("Undecodable inbound line: %r", line[:200])
                await _send_error(None, PARSE_ERROR, "Parse error")
                continue

            if not isinstance(message, dict) or not isinstance(message.get("method"), str):
                if isinstance(message, dict) and ("result" in message or "error" in message):
                    continue
                msg_id = message.get("id") if isinstance(message, dict) else None
                await _send_error(msg_id, INVALID_REQUEST, "Invalid Request")
                continue
            if not isinstance(message.get("params", {}), (dict, type(None))):
                await _send_error(message.get("id"), INVALID_PARAMS, "params must be an object")
                continue

            if message.get("id") is None and message["method"].startswith(_NOTIFICATION_PREFIX):
                logger.debug("Received notification %s", message["method"])
                continue

            task = asyncio.create_task(_respond(message))
            pending.add(task)
            task.add_done_callback(_finished)
    finally:
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
