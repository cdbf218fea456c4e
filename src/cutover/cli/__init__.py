"""Command-line interface."""

from cutover.cli.main import cli, main

__all__ = ["cli", "main"]
