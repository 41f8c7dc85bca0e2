# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured checkrun error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    message: str
    job: str | None = None
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ProvisioningError(CIError):
    """The execution environment for a job could not be created."""

    def __init__(self, job: str, message: str, *, step: str | None = None, **details):
        super().__init__(kind="provisioning_error", message=message, job=job, step=step, details=details)


class SchedulerError(CIError):
    """The pipeline run itself could not proceed (distinct from a failed job)."""

    def __init__(self, message: str, *, job: str | None = None, **details):
        super().__init__(kind="scheduler_error", message=message, job=job, details=details)


class WorkflowError(CIError):
    """A workflow definition could not be loaded."""

    def __init__(self, message: str, *, job: str | None = None, step: str | None = None, **details):
        super().__init__(kind="workflow_error", message=message, job=job, step=step, details=details)


TOOL_HINTS = {
    "cargo": "Install a Rust toolchain (https://rustup.rs) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "git": "Install Git or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "python3": "Install Python 3 or fix PATH (python3).",
}


def tool_hint(tool: str) -> str:
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
