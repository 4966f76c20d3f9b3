"""Reporters for exploration results."""

from quickrest.reporters.console import ConsoleReporter, collapse_path
from quickrest.reporters.json import JSONReporter

__all__ = ["ConsoleReporter", "JSONReporter", "collapse_path"]
