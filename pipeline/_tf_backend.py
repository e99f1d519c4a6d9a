"""Derive the Terraform remote state location and injected variables.

These helpers are pure: they only read :class:`PipelineConfig`. The naming
scheme is shared with existing infrastructure, so the bucket, key and var file
shapes must not change.

Examples
--------
>>> config = PipelineConfig(
...     stage=Stage.PLAN,
...     account_number=123,
...     region="eu-west-1",
...     app_name="billing",
...     environment="prod",
... )
>>> resolve_backend(config).bucket
'123-eu-west-1-terraform-deployments'
"""

from __future__ import annotations

from types import MappingProxyType

from pipeline._pipeline_models import BackendIdentity, PipelineConfig, Stage, VariableSet

__all__ = [
    "backend_config_args",
    "build_variable_set",
    "resolve_backend",
    "state_bucket",
    "state_key",
    "var_file_path",
]


def state_key(environment: str, app_name: str) -> str:
    """Return the remote state object key.

    Examples
    --------
    >>> state_key("prod", "billing")
    'tfstate/prod/billing.json'
    """
    return f"tfstate/{environment}/{app_name}.json"


def state_bucket(account_number: int, region: str, override: str | None = None) -> str:
    """Return the remote state bucket, honouring an explicit override.

    Examples
    --------
    >>> state_bucket(123, "eu-west-1")
    '123-eu-west-1-terraform-deployments'
    >>> state_bucket(123, "eu-west-1", "shared-state")
    'shared-state'
    """
    if override:
        return override
    return f"{account_number}-{region}-terraform-deployments"


def var_file_path(environment: str) -> str:
    """Return the per-environment variable file, relative to the working dir."""
    return f"environments/{environment}.tfvars"


def resolve_backend(config: PipelineConfig) -> BackendIdentity:
    """Compute the remote state identity for the invocation."""
    return BackendIdentity(
        bucket=state_bucket(config.account_number, config.region, config.tf_state_bucket),
        key=state_key(config.environment, config.app_name),
        region=config.region,
    )


def build_variable_set(config: PipelineConfig, backend: BackendIdentity) -> VariableSet:
    """Build the variables passed to plan, apply and destroy.

    Parameters
    ----------
    config : PipelineConfig
        Resolved invocation configuration.
    backend : BackendIdentity
        Remote state identity; its bucket doubles as the distribution bucket.

    Returns
    -------
    VariableSet
        Read-only variables paired with the environment's var file.
    """
    variables: dict[str, str] = {"distribution_bucket": backend.bucket}
    if config.inject_account_number:
        variables["account_number"] = str(config.account_number)
    variables["region"] = config.region
    variables["environment"] = config.environment
    variables["product"] = config.app_name
    return VariableSet(
        variables=MappingProxyType(variables),
        var_file=var_file_path(config.environment),
    )


def backend_config_args(backend: BackendIdentity) -> list[str]:
    """Render the backend identity as ``terraform init`` flags.

    Examples
    --------
    >>> backend_config_args(BackendIdentity("b", "tfstate/dev/app.json", "eu-west-1"))
    ['-backend-config=key=tfstate/dev/app.json', '-backend-config=bucket=b', '-backend-config=region=eu-west-1']
    """
    return [
        f"-backend-config=key={backend.key}",
        f"-backend-config=bucket={backend.bucket}",
        f"-backend-config=region={backend.region}",
    ]
