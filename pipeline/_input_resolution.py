"""Shared helpers for resolving CLI and environment inputs."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources."""

    env_key: str
    default: str | Path | None = None
    as_path: bool = False


def resolve_input(
    param_value: str | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | Path | None:
    """Resolve input from parameter, environment variable, or default.

    Examples
    --------
    >>> resolve_input(None, InputResolution(env_key="REGION"), env={"REGION": "eu-west-1"})
    'eu-west-1'
    >>> resolve_input("us-east-1", InputResolution(env_key="REGION"), env={"REGION": "eu-west-1"})
    'us-east-1'
    """

    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value is not None:
        return Path(env_value) if resolution.as_path else env_value

    return resolution.default


def parse_bool(value: str | None, *, default: bool = True) -> bool:
    """Parse a boolean string value.

    Parameters
    ----------
    value : str | None
        Raw string value to parse.
    default : bool, optional
        Default value when ``value`` is ``None``.

    Returns
    -------
    bool
        Parsed boolean value.

    Examples
    --------
    >>> parse_bool("yes")
    True
    >>> parse_bool(None, default=False)
    False
    """
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")
