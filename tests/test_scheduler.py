"""Tests for the pipeline scheduler."""

import itertools
import threading
import time

import pytest

from checkrun import Event, EventKind, job, on, pipeline, sh
from checkrun.errors import SchedulerError
from checkrun.model import FailureKind, JobResult, JobStatus, PipelineStatus
from checkrun.scheduler import PipelineScheduler, aggregate, run_pipeline

TRIGGER = on("push", branches=["trunk", "devel"])
PUSH_TRUNK = Event(kind=EventKind.PUSH, branch="trunk")


def test_trigger_mismatch_runs_nothing(factory):
    p = pipeline("ci", TRIGGER, job("lint", sh("a", "true")))
    result = run_pipeline(p, Event(kind=EventKind.PUSH, branch="feature-x"), factory)
    assert result.overall_status is PipelineStatus.NOT_RUN
    assert not result.ran
    assert result.job_results == {}
    assert factory.provisioned == []


def test_failing_job_does_not_stop_siblings(factory):
    p = pipeline(
        "ci",
        TRIGGER,
        job("lint", sh("clippy", "exit 1")),
        job("test", sh("unit", "sleep 0.2"), sh("integration", "true")),
    )
    result = run_pipeline(p, PUSH_TRUNK, factory)
    assert result.overall_status is PipelineStatus.FAILURE
    lint = result.job_results["lint"]
    assert lint.status is JobStatus.FAILURE
    assert lint.first_failed_step == 0
    test = result.job_results["test"]
    assert test.status is JobStatus.SUCCESS
    assert len(test.step_results) == 2
    assert sorted(factory.released) == ["lint", "test"]


def test_all_jobs_succeed(factory):
    p = pipeline(
        "ci",
        TRIGGER,
        job("lint", sh("a", "true")),
        job("compile", sh("a", "true")),
        job("test", sh("a", "true")),
    )
    result = run_pipeline(p, Event(kind=EventKind.PUSH, branch="devel"), factory)
    assert result.ok
    assert list(result.job_results) == ["lint", "compile", "test"]
    assert result.event == Event(kind=EventKind.PUSH, branch="devel")


def test_provisioning_failure_is_a_job_failure(factory):
    factory.fail_for.add("compile")
    p = pipeline("ci", TRIGGER, job("compile", sh("a", "true")), job("test", sh("a", "true")))
    result = run_pipeline(p, PUSH_TRUNK, factory)
    assert result.overall_status is PipelineStatus.FAILURE
    assert result.job_results["compile"].failure is FailureKind.PROVISIONING_ERROR
    assert result.job_results["compile"].step_results == ()
    assert result.job_results["test"].ok


def test_jobs_run_concurrently(factory, tmp_path):
    # each job waits for the other's marker; only passes if both run at once
    a, b = tmp_path / "a", tmp_path / "b"
    wait_for = "i=0; while [ ! -f {0} ]; do i=$((i+1)); [ $i -gt 100 ] && exit 1; sleep 0.05; done"
    p = pipeline(
        "ci",
        TRIGGER,
        job("first", sh("mark", f"touch {a}"), sh("wait", wait_for.format(b))),
        job("second", sh("mark", f"touch {b}"), sh("wait", wait_for.format(a))),
    )
    result = run_pipeline(p, PUSH_TRUNK, factory)
    assert result.ok


def test_empty_pipeline_is_a_vacuous_success(factory):
    p = pipeline("ci", TRIGGER)
    result = run_pipeline(p, PUSH_TRUNK, factory)
    assert result.overall_status is PipelineStatus.SUCCESS
    assert result.job_results == {}


def _result(name, status):
    return JobResult(job_name=name, status=status)


def test_aggregate_is_order_independent():
    results = [
        _result("lint", JobStatus.SUCCESS),
        _result("compile", JobStatus.FAILURE),
        _result("test", JobStatus.SUCCESS),
    ]
    for perm in itertools.permutations(results):
        assert aggregate(perm) is PipelineStatus.FAILURE

    passing = [_result(n, JobStatus.SUCCESS) for n in ("lint", "compile", "test")]
    for perm in itertools.permutations(passing):
        assert aggregate(perm) is PipelineStatus.SUCCESS


def test_aggregate_cancelled():
    results = [_result("lint", JobStatus.SUCCESS), _result("test", JobStatus.CANCELLED)]
    assert aggregate(results) is PipelineStatus.CANCELLED
    assert aggregate([_result("lint", JobStatus.FAILURE)], cancelled=True) is PipelineStatus.CANCELLED


def test_cancel_stops_running_and_pending_jobs(factory):
    p = pipeline(
        "ci",
        TRIGGER,
        job("slow", sh("hang", "sleep 30")),
        job("later", sh("a", "true")),
    )
    # one worker: "later" can only start after "slow", which gets cancelled
    scheduler = PipelineScheduler(factory, max_workers=1)
    timer = threading.Timer(0.3, scheduler.cancel)
    timer.start()
    started = time.monotonic()
    try:
        result = scheduler.run(p, PUSH_TRUNK)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 10
    assert result.overall_status is PipelineStatus.CANCELLED
    assert result.job_results["slow"].status is JobStatus.CANCELLED
    later = result.job_results["later"]
    assert later.status is JobStatus.CANCELLED
    assert later.step_results == ()
    assert factory.provisioned == ["slow"]
    assert factory.released == ["slow"]


class ExplodingFactory:
    def provision(self, job, cancel=None):
        raise ValueError("bug in provisioning code")

    def release(self, env):
        pass


def test_crashing_executor_is_a_scheduler_error():
    p = pipeline("ci", TRIGGER, job("lint", sh("a", "true")))
    with pytest.raises(SchedulerError) as exc_info:
        run_pipeline(p, PUSH_TRUNK, ExplodingFactory())
    assert exc_info.value.job == "lint"
    assert "job executor crashed" in str(exc_info.value)


def test_fresh_executors_per_run(factory):
    p = pipeline("ci", TRIGGER, job("lint", sh("a", "true")))
    scheduler = PipelineScheduler(factory)
    first = scheduler.run(p, PUSH_TRUNK)
    second = scheduler.run(p, PUSH_TRUNK)
    assert first.job_results["lint"] is not second.job_results["lint"]
    assert factory.provisioned == ["lint", "lint"]


class ExplodesOnceFactory:
    """Crashes on the first provision, then delegates to a working factory."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def provision(self, job, cancel=None):
        self.calls += 1
        if self.calls == 1:
            raise ValueError("bug in provisioning code")
        return self.inner.provision(job, cancel)

    def release(self, env):
        self.inner.release(env)


def test_scheduler_is_reusable_after_crash(factory):
    p = pipeline("ci", TRIGGER, job("lint", sh("a", "true")))
    scheduler = PipelineScheduler(ExplodesOnceFactory(factory))
    with pytest.raises(SchedulerError):
        scheduler.run(p, PUSH_TRUNK)

    result = scheduler.run(p, PUSH_TRUNK)
    assert result.overall_status is PipelineStatus.SUCCESS
    assert result.job_results["lint"].status is JobStatus.SUCCESS
    assert not scheduler.cancelled


def test_scheduler_is_reusable_after_cancel(factory):
    p = pipeline("ci", TRIGGER, job("slow", sh("hang", "sleep 30")))
    scheduler = PipelineScheduler(factory)
    timer = threading.Timer(0.3, scheduler.cancel)
    timer.start()
    try:
        first = scheduler.run(p, PUSH_TRUNK)
    finally:
        timer.cancel()
    assert first.overall_status is PipelineStatus.CANCELLED

    quick = pipeline("ci", TRIGGER, job("slow", sh("fast", "true")))
    second = scheduler.run(quick, PUSH_TRUNK)
    assert second.overall_status is PipelineStatus.SUCCESS
