"""Module entrypoint for ``python -m randomorg_core``."""

from __future__ import annotations

from randomorg_core.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
