"""Resolve pipeline inputs into an immutable configuration."""

from __future__ import annotations

from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path

from pipeline._input_resolution import InputResolution, parse_bool, resolve_input
from pipeline._pipeline_errors import ValidationError
from pipeline._pipeline_models import (
    DEFAULT_COMMON_CODE_DIR,
    DEFAULT_LAMBDAS_DIR,
    DEFAULT_TF_INSTALL_DIR,
    DEFAULT_TF_VERSION,
    DEFAULT_TF_WORKING_DIR,
    DEFAULT_UNIT_COMMAND,
    PipelineConfig,
    Stage,
)

VALID_STAGES = ", ".join(stage.value for stage in Stage)


@dataclass(frozen=True, slots=True)
class RawPipelineInputs:
    """Raw pipeline inputs from CLI or defaults."""

    stage: str | None = None
    account_number: int | str | None = None
    region: str | None = None
    app_name: str | None = None
    environment: str | None = None
    tf_state_bucket: str | None = None
    lambda_name: str | None = None
    lambdas_dir: Path | None = None
    common_code_dir: str | None = None
    tf_working_dir: Path | None = None
    tf_version: str | None = None
    tf_install_dir: Path | None = None
    unit_command: str | None = None
    inject_account_number: bool | str | None = None
    confirm: bool = False


def parse_stage(value: str | None) -> Stage:
    """Parse a ``--stage`` value.

    Raises
    ------
    ValidationError
        If the stage is missing or not one of the known stages.

    Examples
    --------
    >>> parse_stage("apply")
    <Stage.APPLY: 'apply'>
    """
    if not value:
        msg = f"--stage is required: should be one of {VALID_STAGES}"
        raise ValidationError(msg)
    try:
        return Stage(value.strip().lower())
    except ValueError:
        msg = f"bad stage {value!r}: --stage should be one of {VALID_STAGES}"
        raise ValidationError(msg) from None


def parse_account_number(value: int | str | None) -> int:
    """Parse an AWS account number, treating absence as ``0``.

    Examples
    --------
    >>> parse_account_number("123456789012")
    123456789012
    >>> parse_account_number(None)
    0
    """
    if value is None or value == "":
        return 0
    try:
        number = int(value)
    except (TypeError, ValueError):
        msg = f"--account-number must be a non-negative integer, got {value!r}"
        raise ValidationError(msg) from None
    if number < 0:
        msg = f"--account-number must be a non-negative integer, got {value!r}"
        raise ValidationError(msg)
    return number


def _normalise_lambda(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "all":
        return None
    return value


def _optional_str(value: str | Path | None) -> str | None:
    return str(value) if value else None


def resolve_pipeline_config(
    raw: RawPipelineInputs,
    env: cabc.Mapping[str, str] | None = None,
) -> PipelineConfig:
    """Resolve pipeline inputs from CLI and environment.

    CLI values win over environment variables, which win over defaults. The
    stage is parsed first so an unknown stage fails before anything else is
    looked at. ``confirm`` is deliberately CLI-only.

    Parameters
    ----------
    raw : RawPipelineInputs
        Raw inputs sourced from CLI arguments.
    env : Mapping[str, str] | None, optional
        Environment to read fallbacks from (defaults to ``os.environ``).

    Returns
    -------
    PipelineConfig
        Immutable configuration for the invocation.

    Examples
    --------
    >>> resolve_pipeline_config(RawPipelineInputs(stage="build"), env={}).lambdas_dir
    PosixPath('lambdas')
    """

    def _resolved(
        value: str | Path | None,
        resolution: InputResolution,
    ) -> str | Path | None:
        return resolve_input(value, resolution, env=env)

    stage = parse_stage(_optional_str(_resolved(raw.stage, InputResolution(env_key="STAGE"))))

    account_number = parse_account_number(
        raw.account_number
        if raw.account_number is not None
        else _resolved(None, InputResolution(env_key="ACCOUNT_NUMBER"))
    )
    region = _resolved(raw.region, InputResolution(env_key="AWS_REGION", default=""))
    app_name = _resolved(raw.app_name, InputResolution(env_key="APP_NAME", default=""))
    environment = _resolved(
        raw.environment, InputResolution(env_key="ENVIRONMENT", default="")
    )
    tf_state_bucket = _resolved(
        raw.tf_state_bucket, InputResolution(env_key="TF_STATE_BUCKET")
    )
    lambda_name = _resolved(raw.lambda_name, InputResolution(env_key="LAMBDA"))
    lambdas_dir = _resolved(
        raw.lambdas_dir,
        InputResolution(env_key="LAMBDAS_DIR", default=DEFAULT_LAMBDAS_DIR, as_path=True),
    )
    common_code_dir = _resolved(
        raw.common_code_dir,
        InputResolution(env_key="LAMBDA_COMMON_CODE_DIR", default=DEFAULT_COMMON_CODE_DIR),
    )
    tf_working_dir = _resolved(
        raw.tf_working_dir,
        InputResolution(
            env_key="TF_WORKING_DIR", default=DEFAULT_TF_WORKING_DIR, as_path=True
        ),
    )
    tf_version = _resolved(
        raw.tf_version, InputResolution(env_key="TF_VERSION", default=DEFAULT_TF_VERSION)
    )
    tf_install_dir = _resolved(
        raw.tf_install_dir,
        InputResolution(
            env_key="TF_INSTALL_DIR", default=DEFAULT_TF_INSTALL_DIR, as_path=True
        ),
    )
    unit_command = _resolved(
        raw.unit_command,
        InputResolution(env_key="UNIT_COMMAND", default=DEFAULT_UNIT_COMMAND),
    )
    if isinstance(raw.inject_account_number, bool):
        inject_account_number = raw.inject_account_number
    else:
        inject_raw = _resolved(
            raw.inject_account_number,
            InputResolution(env_key="TF_INJECT_ACCOUNT_NUMBER"),
        )
        inject_account_number = parse_bool(_optional_str(inject_raw), default=True)

    if not str(unit_command).strip():
        msg = "--unit-command must not be blank"
        raise ValidationError(msg)

    return PipelineConfig(
        stage=stage,
        account_number=account_number,
        region=str(region).strip(),
        app_name=str(app_name).strip(),
        environment=str(environment).strip(),
        tf_state_bucket=_optional_str(tf_state_bucket),
        lambda_name=_normalise_lambda(_optional_str(lambda_name)),
        lambdas_dir=Path(lambdas_dir),
        common_code_dir=str(common_code_dir),
        tf_working_dir=Path(tf_working_dir),
        tf_version=str(tf_version).strip(),
        tf_install_dir=Path(tf_install_dir).expanduser(),
        confirm=raw.confirm,
        unit_command=str(unit_command).strip(),
        inject_account_number=inject_account_number,
    )
