"""
Execution environments: one isolated workspace per job.

The job executor only sees the EnvironmentFactory protocol; the local
implementation below gives every job a fresh temporary directory, fills it
with the repository source and runs the job's setup steps there.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping, Optional, Protocol

from . import settings
from .errors import ProvisioningError
from .model import JobSpec
from .step_runner import StepRunner
from .ui.console import get_console

# never copied into a job workspace from a local source tree
COPY_IGNORE = (".git", ".checkrun", "target", "node_modules", "__pycache__", ".venv")


@dataclass(frozen=True)
class ExecutionEnvironment:
    """A prepared, exclusively owned context in which one job's steps run."""
    job_name: str
    workspace: Path
    variables: Mapping[str, str] = field(default_factory=dict)


class EnvironmentFactory(Protocol):
    def provision(self, job: JobSpec, cancel: Optional[threading.Event] = None) -> ExecutionEnvironment: ...

    def release(self, env: ExecutionEnvironment) -> None: ...


@contextmanager
def provisioned(
    factory: EnvironmentFactory,
    job: JobSpec,
    cancel: Optional[threading.Event] = None,
) -> Iterator[ExecutionEnvironment]:
    """
    Acquire an environment for `job` and always release it.

    `cancel` is the run's cancellation signal; setting it stops setup work.
    """
    env = factory.provision(job, cancel)
    try:
        yield env
    finally:
        try:
            factory.release(env)
        except Exception as e:
            get_console().print_warning(f"[{job.name}] could not release environment: {e}")


def _is_remote(source: str) -> bool:
    return "://" in source or source.startswith("git@")


def _git(args: list[str], cwd: Path) -> None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        raise RuntimeError("git command not found. Please install Git.")
    if result.returncode != 0:
        raise RuntimeError(f"git {args[0]} failed: {result.stderr.strip()}")


def checkout(source: str | Path, workspace: Path, ref: str | None = None) -> None:
    """
    Put the repository content into `workspace` (an existing, empty directory).

    Remote URLs, and local repositories when a ref is requested, are cloned;
    a local directory without a ref is copied as-is so uncommitted work is
    verified too.
    """
    source_str = str(source)
    if _is_remote(source_str) or ref is not None:
        _git(["clone", "--quiet", source_str, str(workspace)], cwd=workspace.parent)
        if ref is not None:
            _git(["checkout", "--quiet", ref], cwd=workspace)
        return

    src = Path(source_str).expanduser().resolve()
    if not src.is_dir():
        raise RuntimeError(f"source directory not found: {src}")

    target = workspace.resolve()
    by_pattern = shutil.ignore_patterns(*COPY_IGNORE)

    def ignore(dirpath: str, names: list[str]) -> set[str]:
        skipped = set(by_pattern(dirpath, names))
        # a workspace root inside the source tree must not be copied into itself
        for name in names:
            path = (Path(dirpath) / name).resolve()
            if path == target or path in target.parents:
                skipped.add(name)
        return skipped

    shutil.copytree(src, workspace, ignore=ignore, dirs_exist_ok=True, symlinks=True)


class LocalEnvironmentFactory:
    """
    Provision jobs on this machine.

    Each job gets `<root>/checkrun-<job>-XXXX`. When the job wants a checkout
    and a source is configured, the source is checked out there; then the
    job's setup steps run in it. Any failure along the way is a
    ProvisioningError and the partial workspace is removed.
    """

    def __init__(
        self,
        source: str | Path | None = None,
        *,
        ref: str | None = None,
        root: str | Path | None = None,
        setup_timeout: float | None = None,
        keep_workspaces: bool = False,
    ):
        self.source = source
        self.ref = ref
        self.root = Path(root) if root is not None else (Path(settings.WORK_DIR) if settings.WORK_DIR else None)
        self.setup_timeout = setup_timeout if setup_timeout is not None else settings.STEP_TIMEOUT
        self.keep_workspaces = keep_workspaces

    def provision(self, job: JobSpec, cancel: Optional[threading.Event] = None) -> ExecutionEnvironment:
        console = get_console()
        runner = StepRunner(cancel=cancel)
        job_deadline = time.monotonic() + job.timeout if job.timeout is not None else None
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        workspace = Path(tempfile.mkdtemp(prefix=f"checkrun-{job.name}-", dir=self.root))
        env = ExecutionEnvironment(
            job_name=job.name,
            workspace=workspace,
            variables={
                "CI": "true",
                "CHECKRUN": "true",
                "CHECKRUN_JOB": job.name,
                "CHECKRUN_WORKSPACE": str(workspace),
            },
        )

        try:
            if job.checkout and self.source is not None:
                console.print_debug(f"[{job.name}] checkout {self.source} -> {workspace}")
                checkout(self.source, workspace, self.ref)

            for step in job.setup:
                console.print_step(job.name, step.name)
                deadline = time.monotonic() + (step.timeout or self.setup_timeout)
                if job_deadline is not None:
                    deadline = min(deadline, job_deadline)
                res = runner.run(step, env, deadline, extra_env=job.env)
                console.print_step_result(job.name, res)
                if not res.ok:
                    console.print_failure_output(job.name, res)
                    raise ProvisioningError(
                        job.name,
                        f"setup step '{step.name}' {res.status.value}",
                        step=step.name,
                        status=res.status.value,
                        exit_code=res.exit_code,
                        reason=res.error or "",
                        output=res.captured_output[-2000:].decode("utf-8", errors="replace"),
                    )
        except ProvisioningError:
            self._remove(workspace)
            raise
        except (RuntimeError, OSError) as e:
            self._remove(workspace)
            raise ProvisioningError(job.name, str(e))

        return env

    def release(self, env: ExecutionEnvironment) -> None:
        if self.keep_workspaces:
            get_console().print_info(f"[{env.job_name}] workspace kept at {env.workspace}")
            return
        self._remove(env.workspace)

    @staticmethod
    def _remove(workspace: Path) -> None:
        shutil.rmtree(workspace, ignore_errors=True)
