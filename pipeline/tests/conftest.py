from __future__ import annotations

import sys
from pathlib import Path

import pytest

PIPELINE_ENV_KEYS = (
    "STAGE",
    "ACCOUNT_NUMBER",
    "AWS_REGION",
    "APP_NAME",
    "ENVIRONMENT",
    "TF_STATE_BUCKET",
    "LAMBDA",
    "LAMBDAS_DIR",
    "LAMBDA_COMMON_CODE_DIR",
    "TF_WORKING_DIR",
    "TF_VERSION",
    "TF_INSTALL_DIR",
    "UNIT_COMMAND",
    "TF_INJECT_ACCOUNT_NUMBER",
)


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def _clean_pipeline_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host environment from leaking into resolved inputs."""
    for key in PIPELINE_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class FakeEngine:
    """Records lifecycle calls instead of running Terraform."""

    def __init__(
        self,
        *,
        outputs: dict[str, object] | None = None,
        fail_on: str | None = None,
        plan_changes: bool = True,
    ) -> None:
        self.calls: list[tuple[str, object]] = []
        self.outputs = outputs or {}
        self.fail_on = fail_on
        self.plan_changes = plan_changes

    def _record(self, name: str, detail: object = None) -> None:
        from pipeline._pipeline_errors import TerraformCommandError

        self.calls.append((name, detail))
        if self.fail_on == name:
            msg = f"terraform {name} exited with status 1: boom"
            raise TerraformCommandError(msg)

    def init(self, backend):
        self._record("init", backend)

    def plan(self, variables, *, destroy=False):
        self._record("plan", destroy)
        return self.plan_changes

    def apply(self, variables):
        self._record("apply", variables)

    def destroy(self, variables):
        self._record("destroy", variables)

    def output(self):
        self._record("output")
        return self.outputs

    @property
    def verbs(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_engine() -> type[FakeEngine]:
    return FakeEngine
