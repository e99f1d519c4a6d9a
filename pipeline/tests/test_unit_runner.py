"""Unit tests for running lambda build and test targets."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest
from plumbum.commands.processes import ProcessExecutionError

from pipeline._pipeline_errors import UnitRunError
from pipeline._pipeline_models import Stage
from pipeline._unit_runner import UNIT_TARGETS, run_command_in, run_units


def _make_lambdas(root: Path, *names: str) -> Path:
    for name in names:
        (root / name).mkdir(parents=True)
    return root


class RecordingRunner:
    def __init__(self, failing: str | None = None) -> None:
        self.failing = failing
        self.calls: list[tuple[str, str, tuple[str, ...]]] = []

    def __call__(self, directory: Path, command: str, args: Sequence[str]) -> str:
        self.calls.append((directory.name, command, tuple(args)))
        if directory.name == self.failing:
            raise ProcessExecutionError(
                [command, *args], 2, "compiling...\n", "error: undefined: Handler\n"
            )
        return f"ok {directory.name}\n"


@pytest.mark.parametrize(
    ("stage", "target"),
    [(Stage.UNIT_TEST, "unit-test"), (Stage.BUILD, "target"), (Stage.INT_TEST, "int-test")],
)
def test_run_units_invokes_stage_target(tmp_path: Path, stage: Stage, target: str) -> None:
    root = _make_lambdas(tmp_path, "a", "b")
    runner = RecordingRunner()
    printed: list[str] = []

    results = run_units(["a", "b"], stage, lambdas_dir=root, runner=runner, out=printed.append)

    assert runner.calls == [("a", "make", (target,)), ("b", "make", (target,))]
    assert [result.unit for result in results] == ["a", "b"]
    assert results[0].output == "ok a\n"
    assert len(printed) == 2
    assert UNIT_TARGETS[stage] == target


def test_run_units_stops_at_first_failure(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path, "a", "b")
    runner = RecordingRunner(failing="a")

    with pytest.raises(UnitRunError) as excinfo:
        run_units(["a", "b"], Stage.BUILD, lambdas_dir=root, runner=runner, out=lambda _: None)

    assert [call[0] for call in runner.calls] == ["a"]
    err = excinfo.value
    assert err.unit == "a"
    assert err.stage == "build"
    assert isinstance(err.cause, ProcessExecutionError)
    assert "compiling..." in err.output
    assert "undefined: Handler" in err.output
    assert "compiling..." in str(err)


def test_run_units_missing_lambda_directory(tmp_path: Path) -> None:
    runner = RecordingRunner()
    with pytest.raises(UnitRunError, match="does not exist"):
        run_units(["ghost"], Stage.UNIT_TEST, lambdas_dir=tmp_path, runner=runner)
    assert runner.calls == []


def test_run_units_uses_configured_command(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path, "a")
    runner = RecordingRunner()
    run_units(["a"], Stage.INT_TEST, lambdas_dir=root, command="just", runner=runner, out=print)
    assert runner.calls == [("a", "just", ("int-test",))]


def test_run_units_through_real_commands(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path, "a", "b")
    (root / "a" / "target").write_text("echo built-a\n", encoding="utf-8")
    (root / "b" / "target").write_text("echo half-built; echo broken >&2; exit 3\n", encoding="utf-8")

    with pytest.raises(UnitRunError) as excinfo:
        run_units(
            ["a", "b"],
            Stage.BUILD,
            lambdas_dir=root,
            command="sh",
            runner=run_command_in,
            out=lambda _: None,
        )

    assert excinfo.value.unit == "b"
    assert "half-built" in excinfo.value.output
    assert "broken" in excinfo.value.output


def test_run_command_in_returns_combined_output(tmp_path: Path) -> None:
    (tmp_path / "unit-test").write_text("pwd -P; echo warn >&2\n", encoding="utf-8")
    output = run_command_in(tmp_path, "sh", ["unit-test"])
    assert str(tmp_path.resolve()) in output
    assert output.rstrip().endswith("warn")
