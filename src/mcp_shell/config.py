"""Configuration models for the request-serving shell."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("mcp_shell.config")

CONFIG_PATH_ENV = "MCP_SHELL_CONFIG"
_MIB = 1024 * 1024


class ServerInfo(BaseModel):
    """Name and version reported to clients."""

    name: str = "mcp-shell"
    version: str = "1.0.0"


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error"] = "info"
    max_logs: int = Field(default=1000, ge=1)


class SecurityConfig(BaseModel):
    """Sandbox roots, admission ceiling and optional shared API key."""

    allowed_paths: list[str] = Field(default_factory=lambda: ["./data", "./temp"])
    rate_limit_rpm: int = Field(default=60, ge=0)
    api_key: str | None = None


class CalculatorConfig(BaseModel):
    enabled: bool = True
    max_expression_length: int = Field(default=100, ge=1)


class FileManagerConfig(BaseModel):
    enabled: bool = True
    allowed_extensions: list[str] = Field(default_factory=lambda: [".txt", ".json", ".md"])


class ToolsConfig(BaseModel):
    calculator: CalculatorConfig = Field(default_factory=CalculatorConfig)
    file_manager: FileManagerConfig = Field(default_factory=FileManagerConfig)


class HealthConfig(BaseModel):
    """Configures the background health sampler."""

    interval_seconds: float = Field(default=30.0, gt=0.0)
    memory_threshold_bytes: int = Field(default=500 * _MIB, gt=0)


class ServerConfig(BaseModel):
    server: ServerInfo = Field(default_factory=ServerInfo)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)


def load_config(
    path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Build the startup configuration.

    Values are layered as defaults, then the optional JSON file, then the
    `MCP_SERVER_NAME`, `MCP_RATE_LIMIT` and `MCP_API_KEY` environment overrides.
    A file that cannot be read or validated is reported and ignored.
    """

    env = os.environ if environ is None else environ
    if path is None:
        path = env.get(CONFIG_PATH_ENV) or None

    config = ServerConfig()
    if path is not None:
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            config = ServerConfig.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Failed to load config file %s, using defaults: %s", path, exc)

    return _apply_env_overrides(config, env)


def _apply_env_overrides(config: ServerConfig, env: Mapping[str, str]) -> ServerConfig:
    server_name = env.get("MCP_SERVER_NAME")
    if server_name:
        config.server.name = server_name

    raw_limit = env.get("MCP_RATE_LIMIT")
    if raw_limit:
        try:
            limit = int(raw_limit)
        except ValueError:
            logger.warning("Ignoring invalid MCP_RATE_LIMIT=%r (expected integer)", raw_limit)
        else:
            if limit < 0:
                logger.warning("Ignoring MCP_RATE_LIMIT=%r because it is negative", raw_limit)
            else:
                config.security.rate_limit_rpm = limit

    api_key = env.get("MCP_API_KEY")
    if api_key:
        config.security.api_key = api_key

    return config
