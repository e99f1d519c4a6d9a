"""Exception hierarchy for the lambda deployment pipeline.

Every failure the pipeline can report derives from :class:`PipelineError` so the
CLI entrypoint can catch a single base error, print it, and exit non-zero.
Internal components raise; they never terminate the process themselves.

Examples
--------
>>> raise ValidationError("--region is required to perform Terraform operations")
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base error for deployment pipeline failures.

    Parameters
    ----------
    message
        Human-readable error message describing the failure.
    """


class ValidationError(PipelineError):
    """Raised when a required parameter is missing or a value is malformed.

    Examples
    --------
    >>> raise ValidationError("bad stage: frobnicate")
    """


class DiscoveryError(PipelineError):
    """Raised when the lambdas directory cannot be read or holds no lambdas."""


class UnitRunError(PipelineError):
    """Raised when a lambda's build or test command fails.

    Parameters
    ----------
    unit
        Name of the lambda whose command failed.
    stage
        Stage being run (``unit-test``, ``build`` or ``int-test``).
    cause
        The underlying process error.
    output
        Output captured from the command before it failed.

    Examples
    --------
    >>> err = UnitRunError("helloworld", "build", RuntimeError("exit 2"), "oops")
    >>> err.unit
    'helloworld'
    """

    def __init__(self, unit: str, stage: str, cause: BaseException, output: str) -> None:
        self.unit = unit
        self.stage = stage
        self.cause = cause
        self.output = output
        super().__init__(
            f"{stage} failed for lambda {unit}: {cause}\n\n"
            f"******************\n\n{output}\n******************\n"
        )


class EngineSetupError(PipelineError):
    """Raised when Terraform cannot be installed or bound to its working dir."""


class TerraformCommandError(PipelineError):
    """Raised when a Terraform CLI invocation exits unsuccessfully.

    Examples
    --------
    >>> raise TerraformCommandError("terraform apply exited with status 1")
    """


class TerraformOperationError(PipelineError):
    """Base error for a failed Terraform lifecycle verb.

    The underlying error text is embedded verbatim so operators can diagnose
    the failure without re-running.
    """

    operation = "operation"

    def __init__(self, cause: BaseException | str) -> None:
        self.cause = cause
        super().__init__(f"error during terraform {self.operation}: {cause}")


class InitError(TerraformOperationError):
    """Raised when ``terraform init`` fails."""

    operation = "init"


class PlanError(TerraformOperationError):
    """Raised when ``terraform plan`` fails."""

    operation = "plan"


class ApplyError(TerraformOperationError):
    """Raised when ``terraform apply`` or the output fetch after it fails."""

    operation = "apply"


class DestroyError(TerraformOperationError):
    """Raised when ``terraform destroy`` or the output fetch after it fails."""

    operation = "destroy"
