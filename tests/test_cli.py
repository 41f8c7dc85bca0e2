"""Tests for the CLI module."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from checkrun.cli import EXIT_ERROR, EXIT_FAILURE, EXIT_NOT_RUN, EXIT_SUCCESS, EXIT_USAGE, cli, find_workflow_files

WORKFLOW = """
from checkrun import job, on, pipeline, sh

def workflow():
    return pipeline(
        "ci",
        on("push", branches=["trunk", "devel"]),
        job("lint", sh("Lint", "test -f Cargo.toml")),
        job("test", sh("Test", "{test_cmd}")),
    )
"""


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A source tree plus a workflow file; cwd is the project directory."""
    src = tmp_path / "project"
    src.mkdir()
    (src / "Cargo.toml").write_text("[package]\nname = 'demo'\n")
    monkeypatch.chdir(src)
    return src


def _write_workflow(project: Path, test_cmd: str = "true") -> Path:
    wf = project / "checkrun_workflow.py"
    wf.write_text(WORKFLOW.format(test_cmd=test_cmd))
    return wf


def _run(project: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(
        cli,
        ["run", "--source", str(project), "--work-dir", str(project.parent / "work"), *args],
    )


def test_run_success(project):
    _write_workflow(project)
    result = _run(project, "--branch", "trunk")
    assert result.exit_code == EXIT_SUCCESS, result.output
    assert "RUN STARTED" in result.output
    assert "PIPELINE: SUCCESS" in result.output


def test_run_failure(project):
    _write_workflow(project, test_cmd="echo broken; exit 1")
    result = _run(project, "--branch", "trunk")
    assert result.exit_code == EXIT_FAILURE
    assert "test: FAILURE (step_failed)" in result.output
    assert "lint: SUCCESS" in result.output
    assert "broken" in result.output


def test_run_not_matched(project):
    _write_workflow(project)
    result = _run(project, "--branch", "feature-x")
    assert result.exit_code == EXIT_NOT_RUN
    assert "NOT RUN" in result.output


def test_run_other_event_kind(project):
    _write_workflow(project)
    result = _run(project, "--branch", "trunk", "--event", "pull_request")
    assert result.exit_code == EXIT_NOT_RUN


def test_run_writes_json_report(project):
    _write_workflow(project)
    report = project.parent / "report.json"
    result = _run(project, "--branch", "devel", "--json", str(report))
    assert result.exit_code == EXIT_SUCCESS
    data = json.loads(report.read_text())
    assert data["status"] == "success"
    assert set(data["jobs"]) == {"lint", "test"}


def test_run_step_timeout(project):
    _write_workflow(project, test_cmd="sleep 30")
    result = _run(project, "--branch", "trunk", "--step-timeout", "0.5")
    assert result.exit_code == EXIT_FAILURE
    assert "test: FAILURE (step_timeout)" in result.output


def test_run_yaml_workflow(project):
    wf = project / "ci.yml"
    wf.write_text(
        "on:\n"
        "  push:\n"
        "    branches: [trunk]\n"
        "jobs:\n"
        "  check:\n"
        "    steps:\n"
        "      - uses: actions/checkout@v2\n"
        "      - run: test -f Cargo.toml\n"
    )
    result = _run(project, "--workflow", str(wf), "--branch", "trunk")
    assert result.exit_code == EXIT_SUCCESS, result.output


def test_missing_workflow(project):
    result = CliRunner().invoke(cli, ["run", "--branch", "trunk"])
    assert result.exit_code == EXIT_USAGE
    assert "No workflow file found" in result.output


def test_multiple_workflows(project):
    _write_workflow(project)
    (project / "other_workflow.py").write_text("")
    result = CliRunner().invoke(cli, ["plan"])
    assert result.exit_code == EXIT_USAGE
    assert "Multiple workflow files found" in result.output


def test_broken_workflow(project):
    (project / "checkrun_workflow.py").write_text("JOBS = []\n")
    result = CliRunner().invoke(cli, ["plan"])
    assert result.exit_code == EXIT_ERROR
    assert "Failed to load workflow" in result.output


def test_match(project):
    _write_workflow(project)
    runner = CliRunner()
    ok = runner.invoke(cli, ["match", "--branch", "devel"])
    assert ok.exit_code == 0
    assert "MATCH" in ok.output
    miss = runner.invoke(cli, ["match", "--branch", "feature-x"])
    assert miss.exit_code == 1
    assert "NO MATCH" in miss.output


def test_plan(project):
    _write_workflow(project)
    result = CliRunner().invoke(cli, ["plan"])
    assert result.exit_code == 0
    assert "Trigger: push on devel, trunk" in result.output
    assert "0. Lint: test -f Cargo.toml" in result.output


def test_find_workflow_files_prefers_python(tmp_path):
    gha = tmp_path / ".github" / "workflows"
    gha.mkdir(parents=True)
    (gha / "push.yml").write_text("")
    assert find_workflow_files(tmp_path) == [gha / "push.yml"]

    (tmp_path / "checkrun_workflow.py").write_text("")
    assert find_workflow_files(tmp_path) == [tmp_path / "checkrun_workflow.py"]


def test_invalid_workflow_function(project):
    (project / "checkrun_workflow.py").write_text(
        "from checkrun import job, on, pipeline, sh\n"
        "\n"
        "def workflow():\n"
        "    return pipeline('ci', on('push', branches=['trunk']),\n"
        "                    job('a', sh('one', 'true')), job('a', sh('two', 'true')))\n"
    )
    result = CliRunner().invoke(cli, ["plan"])
    assert result.exit_code == EXIT_ERROR
    assert "Failed to load workflow" in result.output
