"""Run build and test targets for each lambda in turn."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

from plumbum import local
from plumbum.commands.processes import CommandNotFound, ProcessExecutionError

from pipeline._pipeline_errors import UnitRunError
from pipeline._pipeline_models import Stage, UnitResult

logger = logging.getLogger(__name__)

type CommandRunner = Callable[[Path, str, Sequence[str]], str]

UNIT_TARGETS: dict[Stage, str] = {
    Stage.UNIT_TEST: "unit-test",
    Stage.BUILD: "target",
    Stage.INT_TEST: "int-test",
}

_PROGRESS = {
    Stage.UNIT_TEST: ("running tests for %s Lambda...", "unit tests passed"),
    Stage.BUILD: ("building %s Lambda...", "build succeeded"),
    Stage.INT_TEST: (
        "running integration tests for %s Lambda...",
        "integration tests passed",
    ),
}


def run_command_in(directory: Path, command: str, args: Sequence[str]) -> str:
    """Run ``command`` from ``directory`` and return its combined output.

    Standard output is followed by standard error in the returned text.

    Raises
    ------
    ProcessExecutionError
        If the command exits non-zero. Its ``stdout`` and ``stderr`` hold the
        output captured up to the failure.

    Examples
    --------
    >>> run_command_in(Path("lambdas/helloworld"), "make", ["target"])
    'go build ...'
    """
    with local.cwd(directory):
        _, stdout, stderr = local[command][list(args)].run()
    return stdout + stderr


def _captured_output(exc: ProcessExecutionError) -> str:
    return f"{exc.stdout or ''}{exc.stderr or ''}"


def run_units(
    units: Iterable[str],
    stage: Stage,
    *,
    lambdas_dir: Path,
    command: str = "make",
    runner: CommandRunner = run_command_in,
    out: Callable[[str], object] = print,
) -> list[UnitResult]:
    """Run the target for ``stage`` in each lambda, stopping at the first failure.

    Parameters
    ----------
    units : Iterable[str]
        Lambda names, run strictly in order.
    stage : Stage
        One of the build or test stages.
    lambdas_dir : Path
        Directory holding the lambdas.
    command : str, optional
        Executable the target is passed to (defaults to ``make``).
    runner : CommandRunner, optional
        Runs a command from a directory and returns its output.
    out : Callable[[str], object], optional
        Sink for captured output of passing lambdas (defaults to ``print``).

    Returns
    -------
    list[UnitResult]
        One result per lambda, in order.

    Raises
    ------
    UnitRunError
        For the first lambda whose command fails. Later lambdas are not run.
    """
    target = UNIT_TARGETS[stage]
    started, passed = _PROGRESS[stage]
    results: list[UnitResult] = []
    for unit in units:
        logger.info(started, unit)
        unit_dir = lambdas_dir / unit
        if not unit_dir.is_dir():
            cause = FileNotFoundError(f"lambda directory {unit_dir} does not exist")
            raise UnitRunError(unit, stage.value, cause, "")
        try:
            output = runner(unit_dir, command, [target])
        except ProcessExecutionError as exc:
            raise UnitRunError(unit, stage.value, exc, _captured_output(exc)) from exc
        except (CommandNotFound, OSError) as exc:
            raise UnitRunError(unit, stage.value, exc, "") from exc
        out(f"{passed} for {unit}; stdout = {output}")
        results.append(UnitResult(unit=unit, stage=stage, output=output))
    return results
