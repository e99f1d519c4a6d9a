"""Data models for the lambda deployment pipeline.

These models provide a small, typed contract shared by the dispatcher, the
lambda runner and the Terraform helpers, keeping data flow explicit across
module boundaries.

Examples
--------
>>> Stage("plan").is_terraform
True
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any


class Stage(StrEnum):
    """Deployment stages accepted by ``--stage``."""

    UNIT_TEST = "unit-test"
    BUILD = "build"
    INT_TEST = "int-test"
    INIT = "init"
    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"

    @property
    def is_terraform(self) -> bool:
        """Return ``True`` for stages that drive Terraform."""
        return self in TERRAFORM_STAGES

    @property
    def is_unit(self) -> bool:
        """Return ``True`` for stages that run per-lambda commands."""
        return self in UNIT_STAGES


UNIT_STAGES = frozenset({Stage.UNIT_TEST, Stage.BUILD, Stage.INT_TEST})
TERRAFORM_STAGES = frozenset({Stage.INIT, Stage.PLAN, Stage.APPLY, Stage.DESTROY})

DEFAULT_LAMBDAS_DIR = Path("lambdas")
DEFAULT_COMMON_CODE_DIR = "common"
DEFAULT_TF_WORKING_DIR = Path("terraform")
DEFAULT_TF_VERSION = "1.14"
DEFAULT_UNIT_COMMAND = "make"
DEFAULT_TF_INSTALL_DIR = Path.home() / ".cache" / "lambda-pipeline" / "terraform"


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Resolved configuration for one pipeline invocation.

    Built once at startup and passed explicitly to every component.

    Attributes
    ----------
    stage
        The stage to run.
    account_number
        AWS account number of the deployment target (``0`` when unset).
    region, app_name, environment
        Deployment target identity; required for Terraform stages.
    tf_state_bucket
        Override for the derived remote state bucket.
    lambda_name
        Single lambda to run, or ``None`` to run every discovered lambda.
    lambdas_dir, common_code_dir
        Where lambdas live and which child holds shared code.
    tf_working_dir, tf_version, tf_install_dir
        Terraform project directory, pinned engine version and install cache.
    confirm
        Whether destructive operations are confirmed.
    unit_command
        Executable each lambda target is run through.
    inject_account_number
        Whether ``account_number`` is passed as a Terraform variable.
    """

    stage: Stage
    account_number: int = 0
    region: str = ""
    app_name: str = ""
    environment: str = ""
    tf_state_bucket: str | None = None
    lambda_name: str | None = None
    lambdas_dir: Path = DEFAULT_LAMBDAS_DIR
    common_code_dir: str = DEFAULT_COMMON_CODE_DIR
    tf_working_dir: Path = DEFAULT_TF_WORKING_DIR
    tf_version: str = DEFAULT_TF_VERSION
    tf_install_dir: Path = DEFAULT_TF_INSTALL_DIR
    confirm: bool = False
    unit_command: str = DEFAULT_UNIT_COMMAND
    inject_account_number: bool = True


@dataclass(frozen=True, slots=True)
class BackendIdentity:
    """Location of the Terraform remote state object.

    Examples
    --------
    >>> BackendIdentity(
    ...     bucket="123-eu-west-1-terraform-deployments",
    ...     key="tfstate/prod/billing.json",
    ...     region="eu-west-1",
    ... ).key
    'tfstate/prod/billing.json'
    """

    bucket: str
    key: str
    region: str


@dataclass(frozen=True, slots=True)
class VariableSet:
    """Variables injected into every plan, apply and destroy call."""

    variables: MappingProxyType[str, str]
    var_file: str

    def as_args(self) -> list[str]:
        """Render the variables as Terraform CLI flags.

        Examples
        --------
        >>> VariableSet(MappingProxyType({"region": "eu-west-1"}), "environments/dev.tfvars").as_args()
        ['-var=region=eu-west-1', '-var-file=environments/dev.tfvars']
        """
        args = [f"-var={name}={value}" for name, value in self.variables.items()]
        args.append(f"-var-file={self.var_file}")
        return args


@dataclass(frozen=True, slots=True)
class TerraformOutput:
    """A single ``terraform output`` entry."""

    value: Any
    sensitive: bool = False
    type: Any = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class UnitResult:
    """Outcome of one successful lambda command."""

    unit: str
    stage: Stage
    output: str
