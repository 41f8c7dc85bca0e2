"""Console output formatting utilities for checkrun."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..model import JobResult, PipelineResult, StepResult


class Console:
    """
    Centralized console output formatting.

    Jobs report from worker threads, so every write holds a lock and lines
    that belong to a job carry a `[job]` prefix.
    """

    def __init__(self, debug: bool = False, show_output: bool = True, output_tail: int = 40):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            show_output: If True, print the captured output of failed steps
            output_tail: Number of trailing output lines shown for a failed step
        """
        self.debug = debug
        self.show_output = show_output
        self.output_tail = output_tail
        self._lock = threading.Lock()

    def _emit(self, text: str, *, err: bool = False) -> None:
        with self._lock:
            print(text, file=sys.stderr if err else sys.stdout, flush=True)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}\n" + "-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        workflow: str,
        event: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED\n"
            f"Pipeline: {pipeline}\n"
            f"Workflow: {workflow}\n"
            f"Event: {event}\n"
            f"Jobs: {job_count}\n"
        )

    def print_not_run(self, pipeline: str, event: str) -> None:
        self._emit(f"NOT RUN: trigger of '{pipeline}' does not match {event}")

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        self._emit(f"[{name}] JOB STARTED")

    def print_step(self, job: str, step: str) -> None:
        """Print step start message."""
        self._emit(f"[{job}] ▶ {step}")

    def print_step_result(self, job: str, result: "StepResult") -> None:
        mark = "✓" if result.ok else "✗"
        line = f"[{job}] {mark} {result.step_name} ({result.status.value}, {result.duration:.1f}s)"
        if not result.ok and result.error:
            line += f": {result.error}"
        self._emit(line)

    def print_job_result(self, result: "JobResult") -> None:
        if result.ok:
            self._emit(f"[{result.job_name}] JOB SUCCEEDED ({result.duration:.1f}s)")
            return
        reason = result.failure.value if result.failure else result.status.value
        self._emit(f"[{result.job_name}] JOB {result.status.value.upper()}: {reason}")
        if result.error and self.debug:
            self._emit(f"[{result.job_name}] {result.error}")

    def print_failure_output(self, job: str, result: "StepResult") -> None:
        """Print the tail of a failed step's captured output."""
        if not self.show_output or not result.captured_output:
            return
        text = result.captured_output.decode("utf-8", errors="replace").rstrip("\n")
        lines = text.splitlines()
        if not self.debug and len(lines) > self.output_tail:
            lines = [f"... ({len(lines) - self.output_tail} lines omitted)"] + lines[-self.output_tail:]
        self._emit("\n".join(f"[{job}] | {line}" for line in lines))

    def print_pipeline_result(self, result: "PipelineResult") -> None:
        """Print final results summary."""
        out = ["", "=" * 40, f"RESULTS: {result.pipeline_name}", "=" * 40]
        for name, job in result.job_results.items():
            status = job.status.value.upper()
            if job.failure is not None and job.failure.value != job.status.value:
                status += f" ({job.failure.value})"
            out.append(f"  {name}: {status}")
            failed = job.failed_step
            if failed is not None:
                out.append(f"    step #{job.first_failed_step} '{failed.step_name}': {failed.status.value}")
                if failed.error:
                    out.append(f"    {failed.error}")
            elif job.error:
                out.append(f"    {job.error.splitlines()[0]}")
        out.append(f"PIPELINE: {result.overall_status.value.upper()} ({result.duration:.1f}s)")
        self._emit("\n".join(out))

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit("\n".join(lines), err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback

            self._emit("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)), err=True)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_warning(self, message: str) -> None:
        self._emit(f"WARNING: {message}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Optional[Console]) -> None:
    """Set the global console instance (None resets to the default)."""
    global _console
    _console = console
