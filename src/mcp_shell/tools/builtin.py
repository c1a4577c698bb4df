"""Built-in tool families and their config-driven registration."""

from __future__ import annotations

import logging
from pathlib import Path

from mcp_shell.config import SecurityConfig, ToolsConfig
from mcp_shell.tools.calculator import CalculatorTool
from mcp_shell.tools.files import FileManagerTool
from mcp_shell.tools.registry import ToolRegistry

logger = logging.getLogger("mcp_shell.tools.builtin")


def register_builtin_tools(
    registry: ToolRegistry,
    tools: ToolsConfig,
    security: SecurityConfig,
    *,
    base_dir: str | Path | None = None,
) -> dict[str, bool]:
    """Register the default tool families enabled in configuration.

    Families:
    - `calculator`: the `calculate` tool.
    - `file_manager`: `read_file` / `write_file` / `list_directory`, all served
      by a single sandboxed handler.

    Returns the enabled flag for each family, for health reporting.
    """

    if tools.calculator.enabled:
        registry.register_handler(
            CalculatorTool(max_expression_length=tools.calculator.max_expression_length)
        )

    if tools.file_manager.enabled:
        registry.register_handler(
            FileManagerTool(
                security.allowed_paths,
                allowed_extensions=tools.file_manager.allowed_extensions,
                base_dir=base_dir,
            )
        )

    logger.info("Initialized %d tools", len(registry))
    return {
        "calculator": tools.calculator.enabled,
        "file_manager": tools.file_manager.enabled,
    }
