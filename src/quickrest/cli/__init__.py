"""Command-line interface."""

from quickrest.cli.main import cli, main

__all__ = ["cli", "main"]
