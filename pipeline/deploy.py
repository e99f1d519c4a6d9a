#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9,<4", "plumbum>=1.8", "httpx>=0.27"]
# ///
"""Build, test and deploy the lambdas and their Terraform project.

This script:
- runs each lambda's ``unit-test``, build or ``int-test`` target in turn;
- installs the pinned Terraform release and runs init, plan, apply or
  destroy against the S3 remote state backend; and
- only applies or destroys for real when ``--confirm`` is given, planning
  instead otherwise.

Examples
--------
>>> python pipeline/deploy.py --stage build
>>> python pipeline/deploy.py --stage apply --account-number 123456789012 \\
...     --region eu-west-1 --app-name billing --environment prod --confirm
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from pathlib import Path

from cyclopts import App, Parameter
from pipeline._pipeline_errors import PipelineError, ValidationError
from pipeline._pipeline_inputs import RawPipelineInputs, resolve_pipeline_config
from pipeline._pipeline_models import PipelineConfig, Stage
from pipeline._tf_engine import setup_terraform
from pipeline._tf_lifecycle import EngineFactory, run_terraform_stage
from pipeline._unit_discovery import resolve_unit_set
from pipeline._unit_runner import CommandRunner, run_command_in, run_units

app = App(help="Build, test and deploy lambdas and their Terraform project.")
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(message)s"


def validate_stage_parameters(config: PipelineConfig) -> None:
    """Check the parameters the configured stage needs are present.

    Raises
    ------
    ValidationError
        If a Terraform stage is missing its app name, environment, account
        number or region.

    Examples
    --------
    >>> validate_stage_parameters(PipelineConfig(stage=Stage.BUILD))
    """
    if not config.stage.is_terraform:
        return
    required = (
        ("--app-name", config.app_name),
        ("--environment", config.environment),
        ("--account-number", config.account_number),
        ("--region", config.region),
    )
    for flag, value in required:
        if not value:
            msg = f"{flag} is required to perform Terraform operations"
            raise ValidationError(msg)


def dispatch(
    config: PipelineConfig,
    *,
    runner: CommandRunner | None = None,
    engine_factory: EngineFactory | None = None,
    out: Callable[[str], object] = print,
) -> None:
    """Validate the configuration and run its stage.

    Parameters
    ----------
    config : PipelineConfig
        Resolved configuration for the invocation.
    runner : CommandRunner | None, optional
        Runs a lambda target from its directory (defaults to
        :func:`run_command_in`).
    engine_factory : EngineFactory | None, optional
        Installs and binds Terraform for the infrastructure stages (defaults
        to :func:`setup_terraform`).
    out : Callable[[str], object], optional
        Sink for operator-facing output.

    Raises
    ------
    PipelineError
        For any validation, discovery, lambda or Terraform failure.
    """
    validate_stage_parameters(config)
    logger.info("running stage %s", config.stage)
    if config.stage.is_unit:
        units = resolve_unit_set(config)
        run_units(
            units,
            config.stage,
            lambdas_dir=config.lambdas_dir,
            command=config.unit_command,
            runner=runner or run_command_in,
            out=out,
        )
        return
    run_terraform_stage(config, engine_factory=engine_factory or setup_terraform, out=out)


@app.command()
def main(
    stage: str | None = Parameter(),
    account_number: int | None = Parameter(),
    region: str | None = Parameter(),
    app_name: str | None = Parameter(),
    environment: str | None = Parameter(),
    tf_state_bucket: str | None = Parameter(),
    lambda_name: str | None = Parameter(name="--lambda"),
    lambdas_dir: Path | None = Parameter(),
    lambda_common_code_dir: str | None = Parameter(),
    tf_working_dir: Path | None = Parameter(),
    tf_version: str | None = Parameter(),
    tf_install_dir: Path | None = Parameter(),
    unit_command: str | None = Parameter(),
    inject_account_number: bool | None = Parameter(),
    confirm: bool = False,
) -> int:
    """Run one deployment stage.

    Parameters
    ----------
    stage
        Deployment stage: unit-test, build, int-test, init, plan, apply, destroy.
    account_number
        Account number of the AWS deployment target.
    region
        The target AWS region for the deployment.
    app_name
        Application name (e.g. example-service, hello-world).
    environment
        Target environment: prod, nonprod, staging, dev, test, etc.
    tf_state_bucket
        Overrides the default S3 bucket used for Terraform remote state.
    lambda_name
        Build and test a single lambda rather than all of them.
    lambdas_dir
        Directory holding the lambdas to build and test.
    lambda_common_code_dir
        Directory under the lambdas directory holding shared code.
    tf_working_dir
        Terraform working directory.
    tf_version
        Version of Terraform to use.
    tf_install_dir
        Directory Terraform releases are installed into.
    unit_command
        Command each lambda target is run through.
    inject_account_number
        Pass the account number to Terraform as ``account_number``.
    confirm
        Required for apply and destroy to change infrastructure.
    """
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    raw_inputs = RawPipelineInputs(
        stage=stage,
        account_number=account_number,
        region=region,
        app_name=app_name,
        environment=environment,
        tf_state_bucket=tf_state_bucket,
        lambda_name=lambda_name,
        lambdas_dir=lambdas_dir,
        common_code_dir=lambda_common_code_dir,
        tf_working_dir=tf_working_dir,
        tf_version=tf_version,
        tf_install_dir=tf_install_dir,
        unit_command=unit_command,
        inject_account_number=inject_account_number,
        confirm=confirm,
    )
    label = stage or "unknown"
    try:
        config = resolve_pipeline_config(raw_inputs)
        label = config.stage.value
        dispatch(config)
    except PipelineError as exc:
        print(f"error running stage {label}: {exc}", file=sys.stderr)
        return 1

    print(f"\nStage {config.stage} complete.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
