# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


class EventKind(str, Enum):
    """Repository event kinds (named like the GitHub Actions events)."""
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    WORKFLOW_DISPATCH = "workflow_dispatch"


@dataclass(frozen=True)
class Event:
    """An incoming repository event."""
    branch: str
    kind: EventKind = EventKind.PUSH


@dataclass(frozen=True)
class TriggerRule:
    """Activation condition of a pipeline: event kinds x branch set."""
    event_kinds: frozenset[EventKind] = frozenset({EventKind.PUSH})
    branches: frozenset[str] = frozenset()


# ---------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StepSpec:
    """A single external command inside a job."""
    name: str
    command: str
    parameters: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: str | None = None
    timeout: float | None = None  # seconds, overrides the runner default

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.parameters]

    def display_command(self) -> str:
        # `sh -c "<script>"` steps are shown as their script
        if self.command in ("sh", "bash") and self.parameters[:1] in (("-c",), ("-ec",)):
            return " ".join(self.parameters[1:])
        return " ".join(self.argv)


@dataclass(frozen=True)
class JobSpec:
    """
    A verification job: ordered steps run on one execution environment.

    `setup` steps (toolchain installation) and `checkout` are provisioning
    instructions handed to the environment factory; the job executor only
    runs `steps`.
    """
    name: str
    steps: Tuple[StepSpec, ...]
    setup: Tuple[StepSpec, ...] = ()
    checkout: bool = True
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None  # whole-job budget in seconds
    display_name: str | None = None

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError(f"Job '{self.name}' has no steps")
        # accept lists from callers, keep tuples internally
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "setup", tuple(self.setup))

    @property
    def title(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class PipelineSpec:
    """Trigger plus a set of independent jobs."""
    name: str
    trigger: TriggerRule
    jobs: Tuple[JobSpec, ...]

    def __post_init__(self) -> None:
        jobs = tuple(self.jobs)
        names = [j.name for j in jobs]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate job names found: {dupes}")
        object.__setattr__(self, "jobs", jobs)

    def job(self, name: str) -> JobSpec:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class JobStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class FailureKind(str, Enum):
    """Why a job did not succeed."""
    STEP_FAILED = "step_failed"
    STEP_TIMEOUT = "step_timeout"
    PROVISIONING_ERROR = "provisioning_error"
    CANCELLED = "cancelled"


class PipelineStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NOT_RUN = "not_run"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StepResult:
    step_name: str
    status: StepStatus
    exit_code: int
    duration: float
    captured_output: bytes = b""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS


@dataclass(frozen=True)
class JobResult:
    job_name: str
    status: JobStatus
    step_results: Tuple[StepResult, ...] = ()
    first_failed_step: Optional[int] = None
    failure: FailureKind | None = None
    error: str | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCESS

    @property
    def failed_step(self) -> StepResult | None:
        if self.first_failed_step is None:
            return None
        return self.step_results[self.first_failed_step]


@dataclass(frozen=True)
class PipelineResult:
    pipeline_name: str
    overall_status: PipelineStatus
    job_results: Dict[str, JobResult] = field(default_factory=dict)
    event: Event | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.overall_status is PipelineStatus.SUCCESS

    @property
    def ran(self) -> bool:
        return self.overall_status is not PipelineStatus.NOT_RUN

    @property
    def failed_jobs(self) -> list[JobResult]:
        return [r for r in self.job_results.values() if not r.ok]
