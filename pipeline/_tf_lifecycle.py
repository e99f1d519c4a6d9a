"""Terraform lifecycle verbs with a confirmation gate on destructive ones.

``apply`` and ``destroy`` only mutate infrastructure when ``--confirm`` is
given. Otherwise they run the matching plan (a destroy plan for ``destroy``)
so an unconfirmed run is always a preview.

Examples
--------
Preview an unconfirmed destroy:

>>> terraform_destroy(engine, variables, confirmed=False)

Run a stage end to end with the real engine:

>>> run_terraform_stage(config)
"""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from pipeline._pipeline_errors import (
    ApplyError,
    DestroyError,
    InitError,
    PipelineError,
    PlanError,
    ValidationError,
)
from pipeline._pipeline_models import (
    BackendIdentity,
    PipelineConfig,
    Stage,
    TerraformOutput,
    VariableSet,
)
from pipeline._tf_backend import build_variable_set, resolve_backend
from pipeline._tf_engine import TerraformEngine, setup_terraform

logger = logging.getLogger(__name__)

type Out = Callable[[str], object]
type EngineFactory = Callable[[str, Path, Path, TextIO, TextIO], TerraformEngine]

BANNER = "******************"


@dataclass(frozen=True, slots=True)
class Execute:
    """Run the destructive verb for real."""

    verb: Stage


@dataclass(frozen=True, slots=True)
class Preview:
    """Run a plan standing in for the destructive verb."""

    verb: Stage

    @property
    def destroy_preview(self) -> bool:
        """Whether the stand-in plan previews a destroy."""
        return self.verb is Stage.DESTROY


type LifecycleDecision = Execute | Preview


def decide(verb: Stage, confirmed: bool) -> LifecycleDecision:
    """Choose between running ``verb`` and previewing it.

    Examples
    --------
    >>> decide(Stage.APPLY, confirmed=False)
    Preview(verb=<Stage.APPLY: 'apply'>)
    >>> decide(Stage.DESTROY, confirmed=True)
    Execute(verb=<Stage.DESTROY: 'destroy'>)
    """
    if verb not in (Stage.APPLY, Stage.DESTROY):
        msg = f"only apply and destroy are confirmation gated, got {verb}"
        raise ValidationError(msg)
    return Execute(verb) if confirmed else Preview(verb)


def terraform_init(engine: TerraformEngine, backend: BackendIdentity) -> None:
    """Initialise Terraform against the remote state backend."""
    logger.info("initialising Terraform using remote state file %s ...", backend.key)
    try:
        engine.init(backend)
    except PipelineError as exc:
        raise InitError(exc) from exc


def terraform_plan(
    engine: TerraformEngine,
    variables: VariableSet,
    *,
    destroy_preview: bool = False,
) -> bool:
    """Plan an apply, or a destroy when ``destroy_preview`` is set.

    Returns
    -------
    bool
        Whether the plan contains changes.
    """
    logger.info("planning Terraform %s...", "destroy" if destroy_preview else "apply")
    try:
        changes = engine.plan(variables, destroy=destroy_preview)
    except PipelineError as exc:
        raise PlanError(exc) from exc
    logger.info("plan %s", "has changes" if changes else "has no changes")
    return changes


def display_outputs(outputs: dict[str, TerraformOutput], out: Out = print) -> None:
    """Print non-sensitive outputs as ``name = <json value>``.

    Examples
    --------
    >>> display_outputs({"url": TerraformOutput("https://x"), "key": TerraformOutput("s", True)})
    Terraform outputs:
    url = "https://x"
    """
    if outputs:
        out("Terraform outputs:")
    for name in sorted(outputs):
        if outputs[name].sensitive:
            continue
        out(f"{name} = {json.dumps(outputs[name].value)}")


def terraform_apply(
    engine: TerraformEngine,
    variables: VariableSet,
    *,
    confirmed: bool,
    out: Out = print,
) -> None:
    """Apply the configuration, or plan it when not confirmed."""
    match decide(Stage.APPLY, confirmed):
        case Preview(destroy_preview=destroy_preview):
            logger.warning("destructive apply not confirmed running plan instead...")
            terraform_plan(engine, variables, destroy_preview=destroy_preview)
        case Execute():
            logger.info("applying Terraform...")
            try:
                engine.apply(variables)
                display_outputs(engine.output(), out)
            except PipelineError as exc:
                raise ApplyError(exc) from exc


def terraform_destroy(
    engine: TerraformEngine,
    variables: VariableSet,
    *,
    confirmed: bool,
    out: Out = print,
) -> None:
    """Destroy managed infrastructure, or plan the destroy when not confirmed."""
    match decide(Stage.DESTROY, confirmed):
        case Preview(destroy_preview=destroy_preview):
            logger.warning("destructive destroy not confirmed running plan destroy instead...")
            terraform_plan(engine, variables, destroy_preview=destroy_preview)
        case Execute():
            logger.info("destroying all the things...")
            try:
                engine.destroy(variables)
                display_outputs(engine.output(), out)
            except PipelineError as exc:
                raise DestroyError(exc) from exc


def display_buffers(log_stream: io.StringIO, stdout_stream: io.StringIO, out: Out = print) -> None:
    """Print the captured Terraform log and stdout in full."""
    out(f"\nterraform log: \n{BANNER}\n{log_stream.getvalue()}")
    out(f"\nterraform stdout: \n{BANNER}\n{stdout_stream.getvalue()}")


def run_terraform_stage(
    config: PipelineConfig,
    *,
    engine_factory: EngineFactory = setup_terraform,
    out: Out = print,
) -> None:
    """Run one Terraform stage for the invocation.

    The engine's log and stdout buffers are displayed after the verb runs,
    whether it succeeded or not.

    Parameters
    ----------
    config : PipelineConfig
        Validated configuration; ``config.stage`` must be a Terraform stage.
    engine_factory : EngineFactory, optional
        Builds the engine from version, working dir, install dir and the two
        capture buffers (defaults to :func:`setup_terraform`).
    out : Callable[[str], object], optional
        Sink for operator-facing output (defaults to ``print``).
    """
    if not config.stage.is_terraform:
        msg = f"{config.stage} is not a Terraform stage"
        raise ValidationError(msg)

    log_stream = io.StringIO()
    stdout_stream = io.StringIO()
    engine = engine_factory(
        config.tf_version,
        config.tf_working_dir,
        config.tf_install_dir,
        log_stream,
        stdout_stream,
    )

    backend = resolve_backend(config)
    logger.info("using tf state bucket %s", backend.bucket)

    try:
        if config.stage is Stage.INIT:
            terraform_init(engine, backend)
            return
        variables = build_variable_set(config, backend)
        if config.stage is Stage.PLAN:
            terraform_plan(engine, variables, destroy_preview=False)
        elif config.stage is Stage.APPLY:
            terraform_apply(engine, variables, confirmed=config.confirm, out=out)
        else:
            terraform_destroy(engine, variables, confirmed=config.confirm, out=out)
    finally:
        display_buffers(log_stream, stdout_stream, out)
