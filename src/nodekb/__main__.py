"""Module entrypoint for ``python -m nodekb``."""

from __future__ import annotations

from nodekb.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
