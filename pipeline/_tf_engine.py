"""Install a pinned Terraform release and drive it from Python.

The lifecycle helpers only depend on the :class:`TerraformEngine` protocol;
:class:`TerraformCli` is the real binding and the only place a Terraform
process is started.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import platform
import re
import stat
import sys
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Protocol, TextIO

import httpx
from plumbum import local
from plumbum.commands.processes import CommandNotFound, ProcessExecutionError

from pipeline._pipeline_errors import EngineSetupError, TerraformCommandError
from pipeline._pipeline_models import BackendIdentity, TerraformOutput, VariableSet
from pipeline._tf_backend import backend_config_args

logger = logging.getLogger(__name__)

RELEASES_URL = "https://releases.hashicorp.com/terraform"
DOWNLOAD_TIMEOUT = 120.0
PLAN_CHANGES_PRESENT = 2

_VERSION_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(-[0-9A-Za-z.]+)?$")
_OS_NAMES = {"linux": "linux", "darwin": "darwin", "win32": "windows", "freebsd": "freebsd"}
_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "armv7l": "arm",
}


class TerraformEngine(Protocol):
    """Capabilities the lifecycle helpers need from Terraform."""

    def init(self, backend: BackendIdentity) -> None: ...

    def plan(self, variables: VariableSet, *, destroy: bool = False) -> bool: ...

    def apply(self, variables: VariableSet) -> None: ...

    def destroy(self, variables: VariableSet) -> None: ...

    def output(self) -> dict[str, TerraformOutput]: ...


def normalise_version(version: str) -> str:
    """Expand a Terraform version to its full ``major.minor.patch`` form.

    Examples
    --------
    >>> normalise_version("1.14")
    '1.14.0'
    >>> normalise_version("v1.9.8")
    '1.9.8'
    """
    match = _VERSION_PATTERN.match(version.strip().removeprefix("v"))
    if match is None:
        msg = f"invalid Terraform version {version!r}"
        raise EngineSetupError(msg)
    major, minor, patch, pre = match.groups()
    return f"{major}.{minor or 0}.{patch or 0}{pre or ''}"


def release_platform() -> tuple[str, str]:
    """Return the HashiCorp ``(os, arch)`` names for this host."""
    os_name = next(
        (name for prefix, name in _OS_NAMES.items() if sys.platform.startswith(prefix)),
        None,
    )
    arch = _ARCH_NAMES.get(platform.machine().lower())
    if os_name is None or arch is None:
        msg = f"unsupported platform for Terraform: {sys.platform}/{platform.machine()}"
        raise EngineSetupError(msg)
    return os_name, arch


def _binary_name() -> str:
    return "terraform.exe" if sys.platform.startswith("win32") else "terraform"


def _expected_checksum(sums: str, archive: str) -> str:
    for line in sums.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1] == archive:
            return parts[0].lower()
    msg = f"no checksum published for {archive}"
    raise EngineSetupError(msg)


def _download(client: httpx.Client, url: str) -> bytes:
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        msg = f"error downloading {url}: {exc}"
        raise EngineSetupError(msg) from exc
    return response.content


def _extract_binary(archive: bytes, member: str, dest: Path) -> None:
    partial = dest.with_name(f"{dest.name}.part")
    try:
        with zipfile.ZipFile(BytesIO(archive)) as bundle:
            partial.write_bytes(bundle.read(member))
    except (zipfile.BadZipFile, KeyError) as exc:
        msg = f"error extracting {member} from Terraform archive: {exc}"
        raise EngineSetupError(msg) from exc
    partial.chmod(partial.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    os.replace(partial, dest)


def install_terraform(
    version: str,
    install_dir: Path,
    *,
    client: httpx.Client | None = None,
) -> Path:
    """Install an exact Terraform release and return the binary path.

    A binary already present under ``install_dir/<version>`` is reused. New
    downloads are checked against the release's published SHA-256 sums.

    Parameters
    ----------
    version : str
        Version to install; short forms such as ``1.14`` mean ``1.14.0``.
    install_dir : Path
        Cache directory holding one subdirectory per installed version.
    client : httpx.Client | None, optional
        HTTP client to download with (a new one is created when omitted).

    Returns
    -------
    Path
        Path to the executable.

    Raises
    ------
    EngineSetupError
        If the version is invalid or the download, verification or
        extraction fails.
    """
    version = normalise_version(version)
    exec_path = install_dir / version / _binary_name()
    if exec_path.is_file():
        logger.info("using cached Terraform %s at %s", version, exec_path)
        return exec_path

    os_name, arch = release_platform()
    archive_name = f"terraform_{version}_{os_name}_{arch}.zip"
    base_url = f"{RELEASES_URL}/{version}"
    logger.info("installing Terraform %s...", version)

    owns_client = client is None
    http = client or httpx.Client(follow_redirects=True, timeout=DOWNLOAD_TIMEOUT)
    try:
        sums = _download(http, f"{base_url}/terraform_{version}_SHA256SUMS")
        archive = _download(http, f"{base_url}/{archive_name}")
    finally:
        if owns_client:
            http.close()

    expected = _expected_checksum(sums.decode("utf-8", errors="replace"), archive_name)
    actual = hashlib.sha256(archive).hexdigest()
    if actual != expected:
        msg = f"checksum mismatch for {archive_name}: expected {expected}, got {actual}"
        raise EngineSetupError(msg)

    try:
        exec_path.parent.mkdir(parents=True, exist_ok=True)
        _extract_binary(archive, _binary_name(), exec_path)
    except OSError as exc:
        msg = f"error installing Terraform to {exec_path}: {exc}"
        raise EngineSetupError(msg) from exc
    logger.info("installed Terraform %s at %s", version, exec_path)
    return exec_path


def _stream_logger(stream: TextIO) -> logging.Logger:
    """Return a private logger that writes only to ``stream``."""
    engine_logger = logging.Logger("terraform", logging.INFO)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("log: %(asctime)s %(message)s"))
    engine_logger.addHandler(handler)
    engine_logger.propagate = False
    return engine_logger


class TerraformCli:
    """Run Terraform commands in a working directory.

    Every invocation is recorded on ``log_stream`` and its standard output is
    appended to ``stdout_stream``.

    Examples
    --------
    >>> import io
    >>> tf = TerraformCli(Path("/opt/terraform"), Path("terraform"), io.StringIO(), io.StringIO())
    >>> tf.plan(variables)
    True
    """

    def __init__(
        self,
        exec_path: Path,
        working_dir: Path,
        log_stream: TextIO,
        stdout_stream: TextIO,
    ) -> None:
        self.exec_path = exec_path
        self.working_dir = working_dir
        self._stdout = stdout_stream
        self._log = _stream_logger(log_stream)

    def _run(self, args: list[str], *, retcode: int | tuple[int, ...] = 0) -> tuple[int, str]:
        self._log.info("running %s %s in %s", self.exec_path, " ".join(args), self.working_dir)
        try:
            command = local[str(self.exec_path)][args].with_env(TF_IN_AUTOMATION="1")
            with local.cwd(self.working_dir):
                code, stdout, stderr = command.run(retcode=retcode)
        except ProcessExecutionError as exc:
            self._stdout.write(exc.stdout or "")
            self._log.info("terraform %s exited with status %s", args[0], exc.retcode)
            msg = f"terraform {args[0]} exited with status {exc.retcode}: {(exc.stderr or '').strip()}"
            raise TerraformCommandError(msg) from exc
        except (CommandNotFound, OSError) as exc:
            msg = f"error running terraform {args[0]}: {exc}"
            raise TerraformCommandError(msg) from exc
        self._stdout.write(stdout)
        if stderr:
            self._log.info("terraform %s stderr: %s", args[0], stderr.strip())
        return code, stdout

    def init(self, backend: BackendIdentity) -> None:
        """Run ``terraform init`` against the remote state backend."""
        self._run(
            ["init", "-input=false", "-no-color", "-upgrade", *backend_config_args(backend)]
        )

    def plan(self, variables: VariableSet, *, destroy: bool = False) -> bool:
        """Run ``terraform plan`` and report whether changes are pending."""
        args = ["plan", "-input=false", "-no-color", "-refresh=true", "-detailed-exitcode"]
        if destroy:
            args.append("-destroy")
        code, _ = self._run([*args, *variables.as_args()], retcode=(0, PLAN_CHANGES_PRESENT))
        return code == PLAN_CHANGES_PRESENT

    def apply(self, variables: VariableSet) -> None:
        """Run ``terraform apply`` without prompting."""
        self._run(
            ["apply", "-input=false", "-no-color", "-auto-approve", "-refresh=true",
             *variables.as_args()]
        )

    def destroy(self, variables: VariableSet) -> None:
        """Run ``terraform destroy`` without prompting."""
        self._run(
            ["destroy", "-input=false", "-no-color", "-auto-approve", "-refresh=true",
             *variables.as_args()]
        )

    def output(self) -> dict[str, TerraformOutput]:
        """Return the root module outputs."""
        _, stdout = self._run(["output", "-no-color", "-json"])
        try:
            raw = json.loads(stdout or "{}")
        except json.JSONDecodeError as exc:
            msg = f"terraform output returned invalid JSON: {exc}"
            raise TerraformCommandError(msg) from exc
        if not isinstance(raw, dict):
            msg = "terraform output JSON root must be an object"
            raise TerraformCommandError(msg)
        return {
            name: TerraformOutput(
                value=entry.get("value"),
                sensitive=bool(entry.get("sensitive", False)),
                type=entry.get("type"),
            )
            for name, entry in raw.items()
            if isinstance(entry, dict)
        }


def setup_terraform(
    version: str,
    working_dir: Path,
    install_dir: Path,
    log_stream: TextIO,
    stdout_stream: TextIO,
) -> TerraformCli:
    """Install Terraform and bind it to ``working_dir``.

    Raises
    ------
    EngineSetupError
        If the working directory is missing or installation fails.
    """
    if not working_dir.is_dir():
        msg = f"Terraform working directory {working_dir} does not exist"
        raise EngineSetupError(msg)
    exec_path = install_terraform(version, install_dir)
    return TerraformCli(exec_path, working_dir, log_stream, stdout_stream)
