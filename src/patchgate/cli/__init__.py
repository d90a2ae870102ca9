"""Command-line interface for patchgate."""

from __future__ import annotations

from patchgate.cli.main import cli, main

__all__ = ["cli", "main"]
