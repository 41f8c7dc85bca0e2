"""Pytest configuration for checkrun tests."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from checkrun.environment import ExecutionEnvironment
from checkrun.errors import ProvisioningError
from checkrun.ui.console import set_console


@pytest.fixture(autouse=True)
def reset_console():
    """Every test starts from a fresh default console."""
    set_console(None)
    yield
    set_console(None)


class RecordingFactory:
    """
    In-memory environment factory: a fresh temp dir per job, with every
    provision/release recorded. `fail_for` names jobs whose provisioning fails.
    """

    def __init__(self, root: Path, fail_for: tuple[str, ...] = ()):
        self.root = root
        self.fail_for = set(fail_for)
        self.provisioned: list[str] = []
        self.released: list[str] = []

    def provision(self, job, cancel=None) -> ExecutionEnvironment:
        if job.name in self.fail_for:
            raise ProvisioningError(job.name, "no runner available")
        self.provisioned.append(job.name)
        workspace = Path(tempfile.mkdtemp(prefix=f"{job.name}-", dir=self.root))
        return ExecutionEnvironment(job_name=job.name, workspace=workspace, variables={"CHECKRUN_JOB": job.name})

    def release(self, env: ExecutionEnvironment) -> None:
        self.released.append(env.job_name)


@pytest.fixture
def factory(tmp_path: Path) -> RecordingFactory:
    return RecordingFactory(tmp_path)


@pytest.fixture
def workspace_env(tmp_path: Path) -> ExecutionEnvironment:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ExecutionEnvironment(job_name="job", workspace=ws, variables={"CHECKRUN_JOB": "job"})
