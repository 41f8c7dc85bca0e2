"""
Workflow loading.

Two formats produce the same PipelineSpec:

  - a Python file defining `workflow() -> PipelineSpec` or `PIPELINE`
  - a GitHub-Actions-style YAML file (the subset a verification pipeline
    needs: `on`, `env`, `jobs.<id>.steps` with `run`/`uses`)
"""

from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .actions import compile_action
from .dsl import sh
from .errors import WorkflowError
from .model import EventKind, JobSpec, PipelineSpec, StepSpec, TriggerRule
from .ui.console import get_console

YAML_SUFFIXES = (".yml", ".yaml")


# ---------------------------------------------------------------------
# Python workflows
# ---------------------------------------------------------------------

def load_python_workflow(path: str | Path) -> PipelineSpec:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> PipelineSpec
      - PIPELINE = PipelineSpec(...)
    """
    wf_path = Path(path).expanduser().resolve()
    module_name = f"checkrun_workflow_{wf_path.stem}"
    try:
        globals_dict = runpy.run_path(str(wf_path), run_name=module_name)
    except (ValueError, TypeError) as e:
        # invalid job/pipeline definitions surface here
        raise WorkflowError(str(e), path=str(wf_path)) from e

    spec = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            spec = globals_dict["workflow"]()
        except (ValueError, TypeError) as e:
            raise WorkflowError(str(e), path=str(wf_path)) from e
    elif "PIPELINE" in globals_dict:
        spec = globals_dict["PIPELINE"]

    if not isinstance(spec, PipelineSpec):
        raise WorkflowError(
            "Workflow must return/define a PipelineSpec. "
            "Define workflow() -> PipelineSpec or PIPELINE = pipeline(...).",
            path=str(wf_path),
        )
    return spec


# ---------------------------------------------------------------------
# YAML workflows
# ---------------------------------------------------------------------

def _stringify(env: Any) -> Dict[str, str]:
    if env is None:
        return {}
    if not isinstance(env, dict):
        raise ValueError("env must be a mapping")
    out: Dict[str, str] = {}
    for k, v in env.items():
        if isinstance(v, bool):
            out[str(k)] = "true" if v else "false"
        else:
            out[str(k)] = "" if v is None else str(v)
    return out


class StepDoc(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="with")
    env: Dict[str, str] = Field(default_factory=dict)
    shell: Optional[str] = None
    working_directory: Optional[str] = Field(default=None, alias="working-directory")
    timeout_minutes: Optional[float] = Field(default=None, alias="timeout-minutes")

    @field_validator("env", mode="before")
    @classmethod
    def env_to_str(cls, v: Any) -> Dict[str, str]:
        return _stringify(v)

    @field_validator("with_", mode="before")
    @classmethod
    def with_default(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("with must be a mapping")
        return v

    @model_validator(mode="after")
    def run_or_uses(self) -> "StepDoc":
        if (self.run is None) == (self.uses is None):
            raise ValueError("a step needs exactly one of 'run' or 'uses'")
        return self

    @property
    def title(self) -> str:
        if self.name:
            return self.name
        if self.uses:
            return self.uses
        return (self.run or "").strip().splitlines()[0] if (self.run or "").strip() else "run"


class JobDoc(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    steps: List[StepDoc] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    timeout_minutes: Optional[float] = Field(default=None, alias="timeout-minutes")

    @field_validator("env", mode="before")
    @classmethod
    def env_to_str(cls, v: Any) -> Dict[str, str]:
        return _stringify(v)


class WorkflowDoc(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    on: Any = None
    env: Dict[str, str] = Field(default_factory=dict)
    jobs: Dict[str, JobDoc] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def env_to_str(cls, v: Any) -> Dict[str, str]:
        return _stringify(v)


def parse_trigger(on: Any) -> TriggerRule:
    """
    Turn an `on:` value into a TriggerRule.

    Branch filters of all listed events are merged into one branch set.
    Events checkrun cannot receive locally (schedule, release, ...) are
    skipped with a warning.
    """
    if on is None:
        raise WorkflowError("workflow has no 'on' trigger")
    if isinstance(on, str):
        on = {on: None}
    elif isinstance(on, list):
        on = {str(k): None for k in on}
    elif not isinstance(on, dict):
        raise WorkflowError(f"unsupported 'on' value: {on!r}")

    kinds = set()
    branches = set()
    for event_name, config in on.items():
        try:
            kind = EventKind(event_name)
        except ValueError:
            get_console().print_warning(f"ignoring unsupported trigger event '{event_name}'")
            continue
        kinds.add(kind)

        if config is None:
            continue
        if not isinstance(config, dict):
            raise WorkflowError(f"'on.{event_name}' must be a mapping")
        event_branches = config.get("branches") or []
        if isinstance(event_branches, str):
            event_branches = [event_branches]
        for b in event_branches:
            if any(ch in str(b) for ch in "*?[!"):
                raise WorkflowError(
                    f"branch pattern {b!r} is not supported; list branch names explicitly",
                    event=event_name,
                )
            branches.add(str(b))

    if not kinds:
        raise WorkflowError("workflow has no supported trigger events", supported=[k.value for k in EventKind])
    return TriggerRule(event_kinds=frozenset(kinds), branches=frozenset(branches))


def _minutes(value: float | None) -> float | None:
    return value * 60 if value is not None else None


def _compile_job(job_id: str, doc: JobDoc, workflow_env: Dict[str, str]) -> JobSpec:
    steps: List[StepSpec] = []
    setup: List[StepSpec] = []
    env = dict(workflow_env)
    checkout = False

    for s in doc.steps:
        if s.uses is not None:
            if steps:
                raise WorkflowError(
                    "setup actions must come before 'run' steps",
                    job=job_id,
                    step=s.title,
                )
            plan = compile_action(s.uses, s.title, s.with_, job=job_id)
            checkout = checkout or plan.checkout
            setup.extend(plan.setup)
            env.update(plan.env)
            continue

        steps.append(
            sh(
                s.title,
                s.run or "",
                cwd=s.working_directory,
                env=s.env,
                timeout=_minutes(s.timeout_minutes),
                shell="bash" if s.shell == "bash" else "sh",
                errexit=True,
            )
        )

    if not steps:
        raise WorkflowError("job has no 'run' steps", job=job_id)

    env.update(doc.env)
    return JobSpec(
        name=job_id,
        steps=tuple(steps),
        setup=tuple(setup),
        checkout=checkout,
        env=env,
        timeout=_minutes(doc.timeout_minutes),
        display_name=doc.name,
    )


def parse_yaml_workflow(text: str, *, default_name: str = "workflow") -> PipelineSpec:
    raw = yaml.safe_load(text)
    if not isinstance(raw, dict):
        raise WorkflowError("workflow file must contain a mapping")
    # YAML 1.1 reads a bare `on:` key as boolean True
    if True in raw and "on" not in raw:
        raw["on"] = raw.pop(True)

    try:
        doc = WorkflowDoc.model_validate(raw)
    except ValidationError as e:
        raise WorkflowError("invalid workflow definition", errors=str(e)) from e

    if not doc.jobs:
        raise WorkflowError("workflow defines no jobs")

    return PipelineSpec(
        name=doc.name or default_name,
        trigger=parse_trigger(doc.on),
        jobs=tuple(_compile_job(job_id, job_doc, doc.env) for job_id, job_doc in doc.jobs.items()),
    )


def load_yaml_workflow(path: str | Path) -> PipelineSpec:
    wf_path = Path(path).expanduser().resolve()
    with open(wf_path, encoding="utf-8") as f:
        text = f.read()
    try:
        return parse_yaml_workflow(text, default_name=wf_path.stem)
    except yaml.YAMLError as e:
        raise WorkflowError(f"could not parse YAML: {e}", path=str(wf_path)) from e


def load_workflow(path: str | Path) -> PipelineSpec:
    """Load a PipelineSpec from a .py or .yml/.yaml workflow file."""
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix == ".py":
        return load_python_workflow(wf_path)
    if wf_path.suffix in YAML_SUFFIXES:
        return load_yaml_workflow(wf_path)
    raise WorkflowError(f"Workflow must be a .py or .yml file, got: {wf_path.name}")
