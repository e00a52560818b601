"""Configuration models for the resolution controller and its resolvers."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pipeline_resolution.durations import parse_duration


def _to_timedelta(v: Any) -> Any:
    """Accept Go-style strings (``"30s"``) and plain numbers of seconds."""
    if isinstance(v, str):
        return parse_duration(v)
    if isinstance(v, int | float) and not isinstance(v, bool):
        return timedelta(seconds=v)
    return v


def _stringify_resolver_configs(v: Any) -> Any:
    if v is None:
        return {}
    if not isinstance(v, dict):
        return v
    out: dict[str, Any] = {}
    for name, fields in v.items():
        if isinstance(fields, dict):
            fields = {str(k): "" if val is None else str(val) for k, val in fields.items()}
        out[name] = fields
    return out


Duration = Annotated[timedelta, BeforeValidator(_to_timedelta), Field(gt=timedelta(0))]


class ControllerConfig(BaseSettings):
    """Controller settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``RESOLUTION_`` prefix.  Constructor kwargs take precedence.
    """

    model_config = SettingsConfigDict(env_prefix="RESOLUTION_")

    store_path: Path = Path(".resolution-requests.json")
    max_resolution_duration: Duration = timedelta(minutes=1)
    default_resolution_timeout: Duration = timedelta(minutes=1)
    retry_interval: Duration = timedelta(seconds=5)
    workers: int = Field(default=4, ge=1)
    work_dir: Path | None = None


class Config(BaseModel):
    """Top-level configuration file."""

    controller: ControllerConfig = Field(default_factory=ControllerConfig)
    # Per-resolver settings keyed by the resolver's config name,
    # e.g. ``{"git-resolver-config": {"timeout": "30s"}}``.
    resolvers: Annotated[
        dict[str, dict[str, str]], BeforeValidator(_stringify_resolver_configs)
    ] = Field(default_factory=dict)
    config_dir: Path = Path()

    @property
    def store_path(self) -> Path:
        path = self.controller.store_path
        return path if path.is_absolute() else self.config_dir / path
