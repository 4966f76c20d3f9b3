"""Configuration for exploration runs."""

from quickrest.config.settings import ExplorationSettings, load_config

__all__ = ["ExplorationSettings", "load_config"]
