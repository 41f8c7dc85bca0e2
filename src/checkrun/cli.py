# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from checkrun import settings
from checkrun.environment import LocalEnvironmentFactory
from checkrun.errors import SchedulerError, WorkflowError
from checkrun.git_facts.git import detect, head_sha, is_dirty
from checkrun.loader import YAML_SUFFIXES, load_workflow
from checkrun.model import Event, EventKind, PipelineStatus
from checkrun.report import write_json
from checkrun.scheduler import PipelineScheduler
from checkrun.trigger import matches
from checkrun.ui.console import Console, get_console, set_console

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NOT_RUN = 3
EXIT_ERROR = 4
EXIT_INTERRUPTED = 130

EXIT_CODES = {
    PipelineStatus.SUCCESS: EXIT_SUCCESS,
    PipelineStatus.FAILURE: EXIT_FAILURE,
    PipelineStatus.NOT_RUN: EXIT_NOT_RUN,
    PipelineStatus.CANCELLED: EXIT_INTERRUPTED,
}

EVENT_CHOICES = [k.value for k in EventKind]


def find_workflow_files(directory: Path = Path(".")) -> list[Path]:
    """
    Find workflow files in `directory`.

    Python workflows win: checkrun_workflow.py, then other *_workflow.py.
    Only when there are none, .github/workflows/*.yml|*.yaml are considered.
    """
    default_workflow = directory / "checkrun_workflow.py"
    workflow_files = []
    if default_workflow.exists():
        workflow_files.append(default_workflow)
    for path in sorted(directory.glob("*_workflow.py")):
        if path != default_workflow:
            workflow_files.append(path)
    if workflow_files:
        return workflow_files

    gha_dir = directory / ".github" / "workflows"
    if gha_dir.is_dir():
        return sorted(p for p in gha_dir.iterdir() if p.suffix in YAML_SUFFIXES)
    return []


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix not in (".py", *YAML_SUFFIXES):
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  checkrun run --workflow my_workflow.py",
            )
            sys.exit(EXIT_USAGE)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                "  checkrun_workflow.py",
                "  *_workflow.py",
                "  .github/workflows/*.yml",
            ],
            suggestion="Create a workflow file:\n  checkrun_workflow.py\n\nOr specify a workflow explicitly:\n  checkrun run --workflow my_workflow.py",
        )
        sys.exit(EXIT_USAGE)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  checkrun run --workflow {workflow_files[0]}",
        )
        sys.exit(EXIT_USAGE)

    return workflow_files[0]


def _load(workflow_path: Path):
    console = get_console()
    try:
        return load_workflow(workflow_path)
    except (WorkflowError, FileNotFoundError) as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=str(e).splitlines(),
        )
        sys.exit(EXIT_ERROR)


def _resolve_branch(branch: str | None) -> str:
    if branch:
        return branch
    _root, current = detect()
    if current is None:
        get_console().print_error(
            "Could not determine branch",
            "No --branch given and the current directory is not on a git branch.",
            suggestion="Pass the event branch explicitly:\n  checkrun run --branch trunk",
        )
        sys.exit(EXIT_USAGE)
    return current


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """checkrun: run build-verification pipelines locally."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); discovered if omitted")
@click.option("--event", "event_kind", type=click.Choice(EVENT_CHOICES), default="push", show_default=True, help="Event kind")
@click.option("--branch", default=None, help="Event branch (defaults to the current git branch)")
@click.option("--source", default=None, help="Checkout source: path or git URL (defaults to the repository root)")
@click.option("--ref", default=None, help="Git ref to check out (clones instead of copying the working tree)")
@click.option("--workers", default=settings.WORKERS, type=int, help="Number of parallel jobs (default: all)")
@click.option("--step-timeout", default=settings.STEP_TIMEOUT, type=float, show_default=True, help="Default per-step timeout in seconds")
@click.option("--work-dir", default=settings.WORK_DIR, help="Parent directory for job workspaces")
@click.option("--keep-workspaces", is_flag=True, default=False, help="Do not delete job workspaces")
@click.option("--json", "json_path", default=None, type=click.Path(dir_okay=False), help="Write a JSON report to this path")
@click.option("--output/--no-output", default=True, show_default=True, help="Print captured output of failed steps")
@click.pass_context
def run(ctx, workflow, event_kind, branch, source, ref, workers, step_timeout, work_dir, keep_workspaces, json_path, output):
    """Run a pipeline for one repository event."""
    console = get_console()
    console.show_output = output

    workflow_path = discover_workflow(workflow)
    spec = _load(workflow_path)
    event = Event(branch=_resolve_branch(branch), kind=EventKind(event_kind))

    if source is None:
        root, _branch = detect()
        source = str(root) if root is not None else str(Path(".").resolve())

    described = _describe_source(source)
    if described:
        console.print_debug(f"source {source} at {described}")

    scheduler = PipelineScheduler(
        LocalEnvironmentFactory(
            source,
            ref=ref,
            root=work_dir,
            setup_timeout=step_timeout,
            keep_workspaces=keep_workspaces,
        ),
        max_workers=workers,
        step_timeout=step_timeout,
    )

    console.print_run_started(
        pipeline=spec.name,
        workflow=workflow_path.name,
        event=f"{event.kind.value}@{event.branch}",
        job_count=len(spec.jobs),
    )

    try:
        result = scheduler.run(spec, event)
    except SchedulerError as e:
        console.print_error("Pipeline could not run", str(e))
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(EXIT_ERROR)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)

    if result.ran:
        console.print_pipeline_result(result)
    if json_path:
        console.print_info(f"Report written to {write_json(result, json_path)}")

    sys.exit(EXIT_CODES[result.overall_status])


def _describe_source(source: str) -> str | None:
    try:
        sha = head_sha(source)
        return f"{sha[:12]}{' (dirty)' if is_dirty(source) else ''}"
    except (subprocess.CalledProcessError, OSError):
        return None


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); discovered if omitted")
@click.option("--event", "event_kind", type=click.Choice(EVENT_CHOICES), default="push", show_default=True)
@click.option("--branch", default=None, help="Event branch (defaults to the current git branch)")
def match(workflow, event_kind, branch):
    """Check whether an event would trigger the pipeline."""
    console = get_console()
    spec = _load(discover_workflow(workflow))
    event = Event(branch=_resolve_branch(branch), kind=EventKind(event_kind))
    if matches(event, spec.trigger):
        console.print_info(f"MATCH: {event.kind.value}@{event.branch} triggers '{spec.name}'")
        sys.exit(EXIT_SUCCESS)
    console.print_info(f"NO MATCH: {event.kind.value}@{event.branch} does not trigger '{spec.name}'")
    sys.exit(EXIT_FAILURE)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); discovered if omitted")
def plan(workflow):
    """Show the trigger, jobs and steps of a pipeline without running it."""
    console = get_console()
    spec = _load(discover_workflow(workflow))

    kinds = ", ".join(sorted(k.value for k in spec.trigger.event_kinds))
    branches = ", ".join(sorted(spec.trigger.branches)) or "(none: never triggers)"
    console.print_header(f"Pipeline: {spec.name}")
    console.print_info(f"Trigger: {kinds} on {branches}")
    for j in spec.jobs:
        console.print_header(f"Job: {j.name}" + (f" ({j.display_name})" if j.display_name else ""))
        if j.checkout:
            console.print_info("  setup: checkout")
        for s in j.setup:
            console.print_info(f"  setup: {s.name}: {s.display_command()}")
        for i, s in enumerate(j.steps):
            console.print_info(f"  {i}. {s.name}: {s.display_command()}")


if __name__ == "__main__":
    cli()
