from .dsl import sh, step, job, JobBuilder, build, pipeline, on
from .model import (
    Event,
    EventKind,
    TriggerRule,
    StepSpec,
    JobSpec,
    PipelineSpec,
    StepResult,
    StepStatus,
    JobResult,
    JobStatus,
    FailureKind,
    PipelineResult,
    PipelineStatus,
)
from .trigger import matches
from .scheduler import PipelineScheduler, run_pipeline
from .environment import ExecutionEnvironment, LocalEnvironmentFactory

__all__ = [
    "sh", "step", "job", "JobBuilder", "build", "pipeline", "on",
    "Event", "EventKind", "TriggerRule", "StepSpec", "JobSpec", "PipelineSpec",
    "StepResult", "StepStatus", "JobResult", "JobStatus", "FailureKind",
    "PipelineResult", "PipelineStatus",
    "matches", "PipelineScheduler", "run_pipeline",
    "ExecutionEnvironment", "LocalEnvironmentFactory",
]
