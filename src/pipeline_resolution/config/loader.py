"""Read ``resolution.yaml`` and layer environment overrides onto it."""

from __future__ import annotations

import logging
import os
from collections import ChainMap
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from pipeline_resolution.config.schema import Config, ControllerConfig

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

_TOP_LEVEL_KEYS = frozenset({"controller", "resolvers"})


class ConfigError(Exception):
    """The configuration file or its environment overrides are unusable."""


def controller_env_vars() -> dict[str, str]:
    """Controller field → environment variable that may set it."""
    prefix = ControllerConfig.model_config.get("env_prefix", "")
    return {name: f"{prefix}{name}".upper() for name in ControllerConfig.model_fields}


def _environment(config_dir: Path) -> Mapping[str, str | None]:
    """Process environment layered over the ``.env`` file next to the config."""
    env_file = config_dir / ".env"
    dotenv = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}
    return ChainMap(os.environ, dotenv)  # type: ignore[arg-type]


def _controller_settings(raw: Mapping[str, Any], config_dir: Path) -> dict[str, Any]:
    """YAML controller settings with the gaps filled from the environment.

    A value in the YAML file always wins, then the process environment,
    then ``.env``.
    """
    env_vars = controller_env_vars()
    unknown = sorted(set(raw) - set(env_vars))
    if unknown:
        raise ConfigError(f"Unknown controller settings: {', '.join(unknown)}")

    env = _environment(config_dir)
    settings: dict[str, Any] = {}
    for name, var in env_vars.items():
        value = raw.get(name)
        if value is None:
            value = env.get(var)
        if value is not None:
            settings[name] = value
    return settings


def _build(raw: Mapping[str, Any], config_dir: Path, source: str) -> Config:
    unknown = sorted(set(raw) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigError(f"{source}: unknown top-level settings: {', '.join(unknown)}")

    controller = raw.get("controller") or {}
    if not isinstance(controller, dict):
        raise ConfigError(f"{source}: 'controller' must be a mapping")

    try:
        config = Config.model_validate(
            {
                "controller": _controller_settings(controller, config_dir),
                "resolvers": raw.get("resolvers"),
            }
        )
    except ValidationError as exc:
        raise ConfigError(f"{source}: {exc}") from exc
    config.config_dir = config_dir
    return config


def load_config(path: Path | str) -> Config:
    """Parse *path* and return the validated ``Config``.

    Relative paths inside the file (``store_path``) resolve against the
    file's directory, which is also where ``.env`` is looked up.

    Raises:
        ConfigError: The file is unreadable, is not YAML, or fails validation.
    """
    path = Path(path)
    try:
        raw = YAML(typ="safe").load(path)
    except (OSError, YAMLError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    config = _build(raw, path.parent, str(path))
    logger.info("Loaded config from %s (%d resolver configs)", path, len(config.resolvers))
    return config


def default_config(config_dir: Path | str = ".") -> Config:
    """Configuration from environment variables and ``.env`` only (no YAML file)."""
    return _build({}, Path(config_dir), "environment")
