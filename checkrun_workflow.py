# checkrun_workflow.py
# Verifies checkrun itself: lint, compile check and tests as independent jobs.
from __future__ import annotations

from checkrun import job, on, pipeline, sh, step


def workflow():
    return pipeline(
        "checkrun",
        on("push", "pull_request", branches=["main", "devel"]),
        job(
            "lint",
            step("Ruff check", "ruff", "check", "src", "tests"),
            display_name="Lint",
        ),
        job(
            "compile",
            sh("Byte-compile", "python -m compileall -q src"),
            display_name="Compile",
        ),
        job(
            "test",
            sh("Install package", "python -m pip install -q -e '.[test]'"),
            sh("Run pytest", "python -m pytest -q"),
            display_name="Test",
            timeout=30 * 60,
        ),
    )
