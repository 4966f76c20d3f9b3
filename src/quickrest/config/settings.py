"""Exploration settings and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quickrest.errors import ConfigValidationError, ErrorContext

ENV_PREFIX = "QUICKREST_"


class ExplorationSettings(BaseSettings):
    """Knobs for one exploration run."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Search budget
    max_attempts: int = 100
    min_length: int = 1
    max_length: int = 5
    # Attempts between two increments of the sequence length bound
    length_growth: int = 10
    seed: int | None = None
    workers: int = 1

    # Generation
    p_reuse: float = 0.8
    p_drop_optional: float = 0.5

    # Execution
    transport_retries: int = 2
    invocation_timeout: float = 10.0
    base_url: str = "http://localhost:8000"

    # Shrinking
    shrink: bool = True
    max_shrink_passes: int = 50

    report_dir: str = "reports"

    @field_validator("p_reuse", "p_drop_optional")
    @classmethod
    def validate_probability(cls, v: float, info: ValidationInfo) -> float:
        if not 0.0 <= v <= 1.0:
            raise ConfigValidationError(
                message=f"{info.field_name} must lie in [0, 1], got {v}",
                field=info.field_name,
                value=v,
            )
        return v

    @field_validator("max_attempts", "transport_retries")
    @classmethod
    def validate_non_negative(cls, v: int, info: ValidationInfo) -> int:
        if v < 0:
            raise ConfigValidationError(
                message=f"{info.field_name} must not be negative, got {v}",
                field=info.field_name,
                value=v,
            )
        return v

    @field_validator("min_length", "workers", "length_growth", "max_shrink_passes")
    @classmethod
    def validate_positive(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ConfigValidationError(
                message=f"{info.field_name} must be at least 1, got {v}",
                field=info.field_name,
                value=v,
            )
        return v

    @field_validator("invocation_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ConfigValidationError(
                message=f"invocation_timeout must be positive, got {v}",
                field="invocation_timeout",
                value=v,
            )
        return v

    @model_validator(mode="after")
    def validate_lengths(self) -> ExplorationSettings:
        if self.min_length > self.max_length:
            raise ConfigValidationError(
                message=f"min_length ({self.min_length}) exceeds max_length ({self.max_length})",
                context=ErrorContext(
                    extra={"min_length": self.min_length, "max_length": self.max_length}
                ),
            )
        return self


def load_config(config_path: str | Path | None = None, **overrides: Any) -> ExplorationSettings:
    """Load settings from file and environment.

    Priority: explicit overrides > env vars > config file > defaults.
    Overrides whose value is None are ignored so CLI options left unset
    do not mask lower layers.
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path) as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ConfigValidationError(
                    message=f"{config_path} must contain a mapping",
                    context=ErrorContext(extra={"path": str(config_path)}),
                )
            config_data = loaded.get("exploration", loaded)

    config_data.update(_get_env_overrides())
    config_data.update({k: v for k, v in overrides.items() if v is not None})

    return ExplorationSettings(**config_data)


def _get_env_overrides() -> dict[str, Any]:
    """Collect QUICKREST_* variables; pydantic coerces the strings."""
    overrides: dict[str, Any] = {}
    for name in ExplorationSettings.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    return overrides
