"""Module entrypoint for ``python -m netsource``."""

from __future__ import annotations

from netsource.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
