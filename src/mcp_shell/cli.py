"""Process entrypoint: serve the coordinator over stdin/stdout."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections.abc import Callable

from mcp_shell.api.stdio import open_stdin_reader, serve_stdio, write_stdout
from mcp_shell.config import ServerConfig, load_config
from mcp_shell.coordinator import RequestCoordinator
from mcp_shell.obs.logs import configure_logging

logger = logging.getLogger("mcp_shell.cli")

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def run_server(
    config: ServerConfig,
    *,
    reader: asyncio.StreamReader | None = None,
    write: Callable[[str], None] = write_stdout,
    coordinator: RequestCoordinator | None = None,
    install_signal_handlers: bool = True,
) -> None:
    """Serve until EOF on the input stream or SIGINT/SIGTERM.

    The health sampler is always stopped before returning.
    """

    coordinator = coordinator or RequestCoordinator(config)
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    installed: list[signal.Signals] = []

    def _on_signal(signum: signal.Signals) -> None:
        logger.info("Received %s, shutting down gracefully...", signum.name)
        stop_requested.set()

    if install_signal_handlers:
        for signum in _SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(signum, _on_signal, signum)
            except NotImplementedError:
                logger.debug("Signal handlers unavailable on this platform")
                break
            installed.append(signum)

    await coordinator.start()
    if reader is None:
        reader = await open_stdin_reader()
    serve_task = asyncio.create_task(serve_stdio(coordinator, reader, write), name="mcp-shell-stdio")
    stop_task = asyncio.create_task(stop_requested.wait(), name="mcp-shell-stop")
    try:
        await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if serve_task.done():
            serve_task.result()
    finally:
        await coordinator.shutdown()
        for task in (serve_task, stop_task):
            task.cancel()
        await asyncio.gather(serve_task, stop_task, return_exceptions=True)
        for signum in installed:
            loop.remove_signal_handler(signum)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mcp-shell",
        description="Serve tools and resources over newline-delimited JSON-RPC on stdio.",
    )
    parser.add_argument("--config", default=None, help="Path to a JSON configuration file.")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.logging)
    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
