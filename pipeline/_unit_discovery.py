"""Discover the lambdas a build or test stage should run over."""

from __future__ import annotations

import logging
from pathlib import Path

from pipeline._pipeline_errors import DiscoveryError, ValidationError
from pipeline._pipeline_models import PipelineConfig

logger = logging.getLogger(__name__)


def discover_units(root: Path, exclude: str) -> tuple[str, ...]:
    """Return the names of the entries under ``root`` other than ``exclude``.

    Parameters
    ----------
    root : Path
        Directory holding one child per lambda.
    exclude : str
        Name of the shared-code child to skip.

    Returns
    -------
    tuple[str, ...]
        Entry names sorted by name. Empty when ``root`` is empty.

    Raises
    ------
    DiscoveryError
        If ``root`` cannot be read.

    Examples
    --------
    >>> discover_units(Path("lambdas"), "common")
    ('billing', 'helloworld')
    """
    try:
        names = sorted(entry.name for entry in root.iterdir())
    except OSError as exc:
        msg = f"error listing lambdas in {root}: {exc}"
        raise DiscoveryError(msg) from exc
    return tuple(name for name in names if name != exclude)


def validate_unit_name(name: str) -> str:
    """Reject lambda names that would escape the lambdas directory.

    Examples
    --------
    >>> validate_unit_name("helloworld")
    'helloworld'
    """
    if name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        msg = f"--lambda must name a single lambda directory, got {name!r}"
        raise ValidationError(msg)
    return name


def resolve_unit_set(config: PipelineConfig) -> tuple[str, ...]:
    """Resolve the ordered lambdas to run for a build or test stage.

    A ``--lambda`` override is used as-is; otherwise every lambda under the
    lambdas directory is returned. Finding no lambdas is an error so a stage
    never reports success having done nothing.
    """
    if config.lambda_name is not None:
        return (validate_unit_name(config.lambda_name),)

    units = discover_units(config.lambdas_dir, config.common_code_dir)
    if not units:
        msg = f"no lambdas found in {config.lambdas_dir}"
        raise DiscoveryError(msg)
    logger.info("found %d lambdas in %s: %s", len(units), config.lambdas_dir, ", ".join(units))
    return units
