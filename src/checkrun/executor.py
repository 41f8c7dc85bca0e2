# executor.py
from __future__ import annotations

import threading
import time
from typing import List, Optional

from . import settings
from .environment import EnvironmentFactory, provisioned
from .errors import ProvisioningError
from .model import FailureKind, JobResult, JobSpec, JobStatus, StepResult, StepStatus
from .step_runner import StepRunner
from .ui.console import get_console

_FAILURE_FOR_STEP = {
    StepStatus.FAILURE: (JobStatus.FAILURE, FailureKind.STEP_FAILED),
    StepStatus.TIMEOUT: (JobStatus.FAILURE, FailureKind.STEP_TIMEOUT),
    StepStatus.CANCELLED: (JobStatus.CANCELLED, FailureKind.CANCELLED),
}


class JobExecutor:
    """
    Runs one job: provision → steps in order → release.

    The first step that does not succeed ends the job; later steps never run.
    Built fresh for every pipeline run, so nothing leaks between runs.
    """

    def __init__(
        self,
        job: JobSpec,
        *,
        runner: Optional[StepRunner] = None,
        cancel: Optional[threading.Event] = None,
        step_timeout: float | None = None,
    ):
        self.job = job
        self.cancel = cancel or threading.Event()
        self.runner = runner or StepRunner(cancel=self.cancel)
        self.step_timeout = step_timeout if step_timeout is not None else settings.STEP_TIMEOUT

    def _deadline(self, step_timeout: float | None, job_deadline: float | None) -> float | None:
        timeout = step_timeout if step_timeout is not None else self.step_timeout
        deadline = time.monotonic() + timeout if timeout is not None else None
        if job_deadline is None:
            return deadline
        if deadline is None:
            return job_deadline
        return min(deadline, job_deadline)

    def execute(self, env_factory: EnvironmentFactory) -> JobResult:
        job = self.job
        console = get_console()
        started = time.monotonic()

        if self.cancel.is_set():
            return JobResult(
                job_name=job.name,
                status=JobStatus.CANCELLED,
                failure=FailureKind.CANCELLED,
                error="cancelled before start",
            )

        console.print_job_start(job.name)
        job_deadline = started + job.timeout if job.timeout is not None else None
        results: List[StepResult] = []

        try:
            with provisioned(env_factory, job, self.cancel) as env:
                for index, step in enumerate(job.steps):
                    console.print_step(job.name, step.name)
                    res = self.runner.run(
                        step,
                        env,
                        self._deadline(step.timeout, job_deadline),
                        extra_env=job.env,
                    )
                    results.append(res)
                    console.print_step_result(job.name, res)

                    if not res.ok:
                        console.print_failure_output(job.name, res)
                        status, failure = _FAILURE_FOR_STEP[res.status]
                        return self._finish(
                            JobResult(
                                job_name=job.name,
                                status=status,
                                step_results=tuple(results),
                                first_failed_step=index,
                                failure=failure,
                                error=res.error,
                                duration=time.monotonic() - started,
                            )
                        )
        except ProvisioningError as e:
            if self.cancel.is_set() or e.details.get("status") == StepStatus.CANCELLED.value:
                # setup work killed by the run's cancellation
                return self._finish(
                    JobResult(
                        job_name=job.name,
                        status=JobStatus.CANCELLED,
                        failure=FailureKind.CANCELLED,
                        error=str(e),
                        duration=time.monotonic() - started,
                    )
                )
            return self._finish(
                JobResult(
                    job_name=job.name,
                    status=JobStatus.FAILURE,
                    failure=FailureKind.PROVISIONING_ERROR,
                    error=str(e),
                    duration=time.monotonic() - started,
                )
            )
        except OSError as e:
            return self._finish(
                JobResult(
                    job_name=job.name,
                    status=JobStatus.FAILURE,
                    failure=FailureKind.PROVISIONING_ERROR,
                    error=f"provisioning_error: {e}",
                    duration=time.monotonic() - started,
                )
            )

        return self._finish(
            JobResult(
                job_name=job.name,
                status=JobStatus.SUCCESS,
                step_results=tuple(results),
                duration=time.monotonic() - started,
            )
        )

    @staticmethod
    def _finish(result: JobResult) -> JobResult:
        get_console().print_job_result(result)
        return result


def execute(job: JobSpec, env_factory: EnvironmentFactory, **kwargs) -> JobResult:
    """Run a single job with a fresh executor."""
    return JobExecutor(job, **kwargs).execute(env_factory)
