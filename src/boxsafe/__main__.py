"""Module entrypoint for ``python -m boxsafe``."""

from __future__ import annotations

from boxsafe.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
