"""Executors: how invocations reach an API."""

from quickrest.adapters.base import Executor
from quickrest.adapters.http import HttpExecutor
from quickrest.adapters.stub import DRY_RUN_RESPONSE, StubExecutor

__all__ = ["DRY_RUN_RESPONSE", "Executor", "HttpExecutor", "StubExecutor"]
