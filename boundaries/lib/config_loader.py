"""YAML loader for BoundaryConfig.

Example YAML (boundaries.yaml):
    countries:
      min_zoom: 1
      max_zoom: 18
    states:
      min_zoom: ${STATE_MIN_ZOOM:-4}
    cache:
      max_age: 30
      viewport_debounce: 0.15
    styles:
      country:
        selected_color: "#1d4ed8"

Usage:
    # Command line
    boundary-foundry --config ./boundaries.yaml viewport -10 35 30 60 --zoom 5

    # Python API
    from boundaries.lib.config_loader import load_config
    config = load_config("./boundaries.yaml")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from boundaries.lib.config import BoundaryConfig
from boundaries.lib.env import expand_options, load_env_file
from boundaries.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["load_config", "config_from_dict"]


def _format_location(loc: Any) -> str:
    return ".".join(str(part) for part in loc)


def config_from_dict(data: Optional[Dict[str, Any]], *, source: str = "<dict>") -> BoundaryConfig:
    """Validate a parsed mapping into a BoundaryConfig.

    Raises:
        ConfigurationError: Naming the first offending field
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration in {source} must be a mapping, got {type(data).__name__}",
            details={"source": source},
        )

    try:
        return BoundaryConfig.model_validate(expand_options(data))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = _format_location(first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid configuration in {source}: {field}: {first.get('msg')}",
            field=field,
            value=first.get("input"),
            details={"source": source, "error_count": exc.error_count()},
        ) from exc


def load_config(
    path: Optional[Union[str, Path]] = None,
    *,
    env_file: Optional[Union[str, Path]] = None,
) -> BoundaryConfig:
    """Load BoundaryConfig from a YAML file.

    Args:
        path: YAML file. None returns the defaults.
        env_file: .env file to load before expanding ``${VAR}`` references
            (default: search for .env from the working directory)

    Returns:
        Validated BoundaryConfig

    Raises:
        ConfigurationError: File missing, unparseable or invalid
    """
    load_env_file(env_file)

    if path is None:
        return BoundaryConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            field="config_path",
            value=str(config_path),
        )

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Invalid YAML in {config_path}: {exc}",
            details={"source": str(config_path)},
        ) from exc

    config = config_from_dict(data, source=str(config_path))
    logger.debug("Loaded boundary config from %s", config_path)
    return config
