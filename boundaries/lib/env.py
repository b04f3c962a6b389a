"""Environment variable expansion for configuration files.

``${VAR}``, ``$VAR`` and ``${VAR:-default}`` references in YAML values are
replaced from the process environment. python-dotenv loads ``.env`` files so
backend credentials can live outside the config.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv

from boundaries.lib.errors import ConfigurationError

__all__ = ["expand_env_vars", "expand_options", "load_env_file"]

# ${VAR}, ${VAR:-default} or $VAR
ENV_VAR_PATTERN = re.compile(
    r"\$\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}"
    r"|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)"
)


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load a .env file into the environment.

    Returns True if a file was found and loaded.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment references in a string.

    Unset variables fall back to their ``:-`` default when given. Otherwise
    the reference is left untouched, or ConfigurationError is raised when
    ``strict``.

    Example:
        >>> os.environ["SUPABASE_URL"] = "https://xyz.supabase.co"
        >>> expand_env_vars("${SUPABASE_URL}/rest/v1")
        'https://xyz.supabase.co/rest/v1'
        >>> expand_env_vars("${BOUNDARY_SCHEMA:-gis}")
        'gis'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group("braced") or match.group("bare")
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        default = match.group("default")
        if default is not None:
            return default
        if strict:
            raise ConfigurationError(
                f"Environment variable not set: {var_name}",
                field=var_name,
                suggestion=f"Export {var_name} or add it to your .env file",
            )
        return str(match.group(0))

    return ENV_VAR_PATTERN.sub(replacer, value)


def _expand(value: Any, strict: bool) -> Any:
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return expand_options(value, strict=strict)
    if isinstance(value, list):
        return [_expand(item, strict) for item in value]
    return value


def expand_options(options: Dict[str, Any], *, strict: bool = False) -> Dict[str, Any]:
    """Recursively expand environment references in a parsed config mapping.

    Example:
        >>> os.environ["STATE_MIN"] = "5"
        >>> expand_options({"states": {"min_zoom": "${STATE_MIN}"}, "retry": 3})
        {'states': {'min_zoom': '5'}, 'retry': 3}
    """
    return {key: _expand(value, strict) for key, value in options.items()}
