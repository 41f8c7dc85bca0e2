# report.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .model import JobResult, PipelineResult, StepResult

# characters of captured output kept per step in machine-readable reports
OUTPUT_LIMIT = 8000


def _output_text(data: bytes, limit: int) -> str:
    text = data.decode("utf-8", errors="replace")
    if len(text) > limit:
        return text[-limit:]
    return text


def step_to_dict(result: StepResult, *, output_limit: int = OUTPUT_LIMIT) -> Dict[str, Any]:
    return {
        "name": result.step_name,
        "status": result.status.value,
        "exit_code": result.exit_code,
        "duration": round(result.duration, 3),
        "error": result.error,
        "output": _output_text(result.captured_output, output_limit),
    }


def job_to_dict(result: JobResult, *, output_limit: int = OUTPUT_LIMIT) -> Dict[str, Any]:
    return {
        "name": result.job_name,
        "status": result.status.value,
        "failure": result.failure.value if result.failure else None,
        "first_failed_step": result.first_failed_step,
        "error": result.error,
        "duration": round(result.duration, 3),
        "steps": [step_to_dict(s, output_limit=output_limit) for s in result.step_results],
    }


def result_to_dict(result: PipelineResult, *, output_limit: int = OUTPUT_LIMIT) -> Dict[str, Any]:
    """JSON-safe view of a pipeline run: overall status plus per-job, per-step detail."""
    event = None
    if result.event is not None:
        event = {"kind": result.event.kind.value, "branch": result.event.branch}
    return {
        "pipeline": result.pipeline_name,
        "status": result.overall_status.value,
        "event": event,
        "duration": round(result.duration, 3),
        "jobs": {name: job_to_dict(j, output_limit=output_limit) for name, j in result.job_results.items()},
    }


def write_json(result: PipelineResult, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(result_to_dict(result), indent=2) + "\n", encoding="utf-8")
    return out
