"""Unit tests for lambda discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from pipeline._pipeline_errors import DiscoveryError, ValidationError
from pipeline._pipeline_models import PipelineConfig, Stage
from pipeline._unit_discovery import discover_units, resolve_unit_set


def _make_lambdas(root: Path, *names: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        (root / name).mkdir()
    return root


def test_discover_units_skips_common_code(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path / "lambdas", "b", "common", "a")
    assert discover_units(root, "common") == ("a", "b")


def test_discover_units_without_excluded_entry_returns_all(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path / "lambdas", "a", "b", "common")
    assert discover_units(root, "shared") == ("a", "b", "common")


def test_discover_units_empty_directory_is_empty(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path / "lambdas")
    assert discover_units(root, "common") == ()


def test_discover_units_missing_root_fails(tmp_path: Path) -> None:
    with pytest.raises(DiscoveryError, match="error listing lambdas"):
        discover_units(tmp_path / "missing", "common")


def test_resolve_unit_set_rejects_empty_discovery(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path / "lambdas", "common")
    config = PipelineConfig(stage=Stage.BUILD, lambdas_dir=root)
    with pytest.raises(DiscoveryError, match="no lambdas found"):
        resolve_unit_set(config)


def test_resolve_unit_set_uses_single_lambda_override(tmp_path: Path) -> None:
    root = _make_lambdas(tmp_path / "lambdas", "a", "b")
    config = PipelineConfig(stage=Stage.UNIT_TEST, lambdas_dir=root, lambda_name="b")
    assert resolve_unit_set(config) == ("b",)


def test_resolve_unit_set_override_skips_discovery(tmp_path: Path) -> None:
    config = PipelineConfig(
        stage=Stage.UNIT_TEST,
        lambdas_dir=tmp_path / "missing",
        lambda_name="helloworld",
    )
    assert resolve_unit_set(config) == ("helloworld",)


@pytest.mark.parametrize("name", ["..", "../other", "a/b"])
def test_resolve_unit_set_rejects_paths(tmp_path: Path, name: str) -> None:
    config = PipelineConfig(stage=Stage.BUILD, lambdas_dir=tmp_path, lambda_name=name)
    with pytest.raises(ValidationError, match="--lambda"):
        resolve_unit_set(config)
