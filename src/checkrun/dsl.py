# src/checkrun/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .model import JobSpec, PipelineSpec, StepSpec, TriggerRule
from .trigger import on


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
    shell: str = "sh",
    errexit: bool = False,
) -> StepSpec:
    """
    Create a shell step: `sh -c <cmd>`.

    With errexit the script runs under `-e` and stops at its first failing line.
    """
    return StepSpec(
        name=name,
        command=shell,
        parameters=("-ec" if errexit else "-c", cmd),
        env=dict(env or {}),
        cwd=cwd,
        timeout=timeout,
    )


def step(
    name: str,
    command: str,
    *parameters: str,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
) -> StepSpec:
    """Create a step that executes `command` directly: step("Lint", "cargo", "clippy")."""
    return StepSpec(
        name=name,
        command=command,
        parameters=tuple(str(p) for p in parameters),
        env=dict(env or {}),
        cwd=cwd,
        timeout=timeout,
    )


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: StepSpec,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[StepSpec]] = None,  # allow: job("x", steps_list=[...])
    setup: Optional[List[StepSpec]] = None,
    checkout: bool = True,
    env: Optional[Dict[str, str]] = None,
    timeout: float | None = None,
    display_name: str | None = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> JobSpec:
    steps_final: List[StepSpec] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return JobSpec(
        name=name,
        steps=tuple(steps_final),
        setup=tuple(setup or ()),
        checkout=checkout,
        env={k: str(v) for k, v in (env or {}).items()},
        timeout=timeout,
        display_name=display_name,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[StepSpec] = []
        self._setup: list[StepSpec] = []
        self._env: dict[str, str] = {}
        self._checkout = True
        self._timeout: float | None = None
        self._display_name: str | None = None

    def named(self, display_name: str):
        self._display_name = display_name
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None, timeout: float | None = None):
        self._steps.append(sh(name, run, cwd=cwd, timeout=timeout))
        return self

    def add_step(self, spec: StepSpec):
        self._steps.append(spec)
        return self

    def define_setup(self, name: str, run: str):
        self._setup.append(sh(name, run))
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def without_checkout(self):
        self._checkout = False
        return self

    def with_timeout(self, seconds: float):
        self._timeout = seconds
        return self

    def build(self) -> JobSpec:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")

        return JobSpec(
            name=self.name,
            steps=tuple(self._steps),
            setup=tuple(self._setup),
            checkout=self._checkout,
            env=dict(self._env),
            timeout=self._timeout,
            display_name=self._display_name,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(name: str, trigger: TriggerRule, *jobs: JobSpec, jobs_list: Iterable[JobSpec] = ()) -> PipelineSpec:
    """
    Pipeline definition helper.

    Users can write:
        from checkrun import pipeline, on, job, sh

        def workflow():
            return pipeline(
                "ci",
                on("push", branches=["trunk", "devel"]),
                job("lint", sh("Lint", "cargo clippy")),
                job("test", sh("Test", "cargo test")),
            )

    Or define PIPELINE = pipeline(...) directly.
    """
    return PipelineSpec(name=name, trigger=trigger, jobs=tuple(jobs_list) + tuple(jobs))


__all__ = ["sh", "step", "job", "JobBuilder", "build", "pipeline", "on"]
