"""FastAPI surface for diagnostics and RPC over HTTP."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Header, Request
from pydantic import BaseModel, Field

from mcp_shell.config import ServerConfig, load_config
from mcp_shell.coordinator import RequestCoordinator
from mcp_shell.types import to_wire


class RpcRequest(BaseModel):
    method: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


def create_app(
    config: ServerConfig | None = None,
    *,
    base_dir: str | Path | None = None,
) -> FastAPI:
    """Build an app whose lifespan owns the coordinator's health sampler."""

    config = config or load_config()
    coordinator = RequestCoordinator(config, base_dir=base_dir)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await coordinator.start()
        try:
            yield
        finally:
            await coordinator.shutdown()

    app = FastAPI(title=config.server.name, version=config.server.version, lifespan=lifespan)
    app.state.coordinator = coordinator

    @app.get("/health")
    def health() -> dict[str, Any]:
        payload = coordinator.sampler.sample().to_payload()
        payload["sampler_running"] = coordinator.sampler.running
        payload["tool_count"] = len(coordinator.registry)
        return payload

    @app.get("/tools")
    def tools() -> dict[str, Any]:
        return {"tools": [definition.to_payload() for definition in coordinator.registry.list_definitions()]}

    @app.post("/rpc")
    async def rpc(
        body: RpcRequest,
        request: Request,
        x_api_key: str | None = Header(default=None),
    ) -> dict[str, Any]:
        client_id = request.client.host if request.client else "http"
        result = await coordinator.handle(
            body.method,
            body.params,
            client_id=client_id,
            api_key=x_api_key,
        )
        return {"result": to_wire(result)}

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(trace) for trace in coordinator.trace_store.list_recent(limit=limit)]}

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return coordinator.trace_store.summary()

    return app
