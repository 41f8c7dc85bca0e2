# scheduler.py
from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable

from .environment import EnvironmentFactory
from .errors import SchedulerError
from .executor import JobExecutor
from .model import (
    Event,
    JobResult,
    JobStatus,
    PipelineResult,
    PipelineSpec,
    PipelineStatus,
)
from .trigger import matches
from .ui.console import get_console


def _cancel_on_crash(cancel: threading.Event):
    def callback(fut: Future) -> None:
        # an executor that raises is a scheduler failure; stop the siblings
        if fut.exception() is not None:
            cancel.set()
    return callback


def aggregate(job_results: Iterable[JobResult], *, cancelled: bool = False) -> PipelineStatus:
    """
    Overall status of a finished run. Independent of completion order:
    success iff every job succeeded.
    """
    results = list(job_results)
    if all(r.status is JobStatus.SUCCESS for r in results):
        return PipelineStatus.SUCCESS
    if cancelled or any(r.status is JobStatus.CANCELLED for r in results):
        return PipelineStatus.CANCELLED
    return PipelineStatus.FAILURE


class PipelineScheduler:
    """
    Scheduler + orchestrator:

    - Applies the trigger; a mismatch is a NOT_RUN result, not an error.
    - Builds a fresh JobExecutor per job and runs them all in parallel.
    - Waits for every job; one job failing never stops its siblings.
    - Job results come back only through futures.
    - Every run gets its own cancellation signal, so a cancelled or crashed
      run leaves the scheduler usable for the next one.
    """

    def __init__(
        self,
        env_factory: EnvironmentFactory,
        *,
        max_workers: int | None = None,
        step_timeout: float | None = None,
    ):
        self.env_factory = env_factory
        self.max_workers = max_workers
        self.step_timeout = step_timeout
        # signal of the current (or last) run
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        """Kill running steps and mark not-yet-started jobs as cancelled."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _executors(self, pipeline: PipelineSpec, cancel: threading.Event) -> Dict[str, JobExecutor]:
        return {
            job.name: JobExecutor(job, cancel=cancel, step_timeout=self.step_timeout)
            for job in pipeline.jobs
        }

    def run(self, pipeline: PipelineSpec, event: Event) -> PipelineResult:
        console = get_console()
        started = time.monotonic()

        if not matches(event, pipeline.trigger):
            console.print_not_run(pipeline.name, f"{event.kind.value}@{event.branch}")
            return PipelineResult(
                pipeline_name=pipeline.name,
                overall_status=PipelineStatus.NOT_RUN,
                event=event,
            )

        cancel = self.cancel_event = threading.Event()
        executors = self._executors(pipeline, cancel)
        if not executors:
            return PipelineResult(
                pipeline_name=pipeline.name,
                overall_status=PipelineStatus.SUCCESS,
                event=event,
                duration=time.monotonic() - started,
            )

        max_workers = self.max_workers or len(executors)
        futures: Dict[str, Future] = {}
        job_results: Dict[str, JobResult] = {}
        errors: Dict[str, BaseException] = {}

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="checkrun-job") as pool:
            try:
                for name, executor in executors.items():
                    fut = pool.submit(executor.execute, self.env_factory)
                    fut.add_done_callback(_cancel_on_crash(cancel))
                    futures[name] = fut
            except RuntimeError as e:
                cancel.set()
                wait(futures.values())
                raise SchedulerError(f"could not launch job executors: {e}", job=name)

            try:
                wait(futures.values())
            except KeyboardInterrupt:
                console.print_info("\nInterrupted, cancelling running jobs...")
                cancel.set()
                wait(futures.values())

        # declaration order, whatever the completion order was
        for name, fut in futures.items():
            exc = fut.exception()
            if exc is not None:
                errors[name] = exc
            else:
                job_results[name] = fut.result()

        if errors:
            name, exc = next(iter(errors.items()))
            console.print_debug(f"job executor '{name}' crashed: {exc!r}")
            raise SchedulerError(
                f"job executor crashed: {exc}",
                job=name,
                failed_executors=sorted(errors),
            ) from exc

        return PipelineResult(
            pipeline_name=pipeline.name,
            overall_status=aggregate(job_results.values(), cancelled=cancel.is_set()),
            job_results=job_results,
            event=event,
            duration=time.monotonic() - started,
        )


def run_pipeline(
    pipeline: PipelineSpec,
    event: Event,
    env_factory: EnvironmentFactory,
    **kwargs,
) -> PipelineResult:
    """Convenience: one-shot scheduler run."""
    return PipelineScheduler(env_factory, **kwargs).run(pipeline, event)
