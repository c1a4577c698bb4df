"""Module entrypoint: `python -m mcp_shell`."""

from mcp_shell.cli import main

raise SystemExit(main())
