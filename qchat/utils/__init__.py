"""Utility functions for QChat."""

import os
import re
import shlex
from typing import Sequence, Union

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(config: object) -> object:
    """Recursively expand environment variables in config.

    Replaces ${VAR} patterns with environment variable values. Unknown
    variables are left untouched.

    Args:
        config: Configuration object (dict, list, str, or primitive)

    Returns:
        Configuration with all ${VAR} patterns replaced
    """
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}  # type: ignore[misc]
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):

        def replace_env_var(match: re.Match[str]) -> str:
            return os.getenv(match.group(1), match.group(0))

        return _ENV_VAR_PATTERN.sub(replace_env_var, config)
    return config


def to_argv(command: Union[str, Sequence[str]]) -> list[str]:
    """Normalize a command given as a shell-like string or an argv sequence."""
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)
