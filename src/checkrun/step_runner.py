# step_runner.py
from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional

from . import settings
from .errors import tool_hint
from .model import StepResult, StepStatus, StepSpec
from .process import Process

if TYPE_CHECKING:
    from .environment import ExecutionEnvironment

# how often a waiting step re-checks its deadline and the cancel flag
POLL_INTERVAL = 0.05


class StepRunner:
    """
    Runs one step in a prepared environment and turns whatever happens into
    exactly one StepResult. Nothing raised by the process layer escapes.
    """

    def __init__(
        self,
        *,
        cancel: Optional[threading.Event] = None,
        max_output: int | None = None,
    ):
        self.cancel = cancel or threading.Event()
        self.max_output = max_output if max_output is not None else settings.MAX_OUTPUT_BYTES

    def _build_env(self, step: StepSpec, env: "ExecutionEnvironment", extra: Mapping[str, str] | None) -> dict[str, str]:
        merged = os.environ.copy()
        merged.update(env.variables)
        merged.update(extra or {})
        merged.update(step.env)
        return merged

    def run(
        self,
        step: StepSpec,
        env: "ExecutionEnvironment",
        deadline: float | None = None,
        *,
        extra_env: Mapping[str, str] | None = None,
    ) -> StepResult:
        """
        Execute `step` inside `env`.

        `deadline` is an absolute time.monotonic() value; once it passes the
        process group is killed and the result status is TIMEOUT.
        """
        started = time.monotonic()

        def result(status: StepStatus, exit_code: int, output: bytes = b"", error: str | None = None) -> StepResult:
            return StepResult(
                step_name=step.name,
                status=status,
                exit_code=exit_code,
                duration=time.monotonic() - started,
                captured_output=output,
                error=error,
            )

        if self.cancel.is_set():
            return result(StepStatus.CANCELLED, -1, error="cancelled before start")

        cwd = (Path(env.workspace) / (step.cwd or ".")).resolve()
        if not cwd.is_dir():
            return result(StepStatus.FAILURE, -1, error=f"working directory not found: {cwd}")

        try:
            proc = Process.start(
                step.argv,
                cwd=cwd,
                env=self._build_env(step, env, extra_env),
                max_output=self.max_output,
            )
        except FileNotFoundError:
            return result(
                StepStatus.FAILURE,
                -1,
                error=f"command not found: {step.command}. {tool_hint(step.command)}",
            )
        except OSError as e:
            return result(StepStatus.FAILURE, -1, error=f"could not start {step.command}: {e}")

        while True:
            wait_for = POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    proc.kill()
                    return result(
                        StepStatus.TIMEOUT,
                        -1,
                        proc.output(),
                        error=f"timed out after {time.monotonic() - started:.1f}s",
                    )
                wait_for = min(wait_for, remaining)

            code = proc.wait(timeout=wait_for)
            if code is not None:
                break

            if self.cancel.is_set():
                proc.kill()
                return result(StepStatus.CANCELLED, -1, proc.output(), error="cancelled")

        if code != 0:
            return result(StepStatus.FAILURE, code, proc.output(), error=f"exited with code {code}")
        return result(StepStatus.SUCCESS, code, proc.output())
