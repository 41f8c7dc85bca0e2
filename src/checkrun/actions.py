# actions.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from .dsl import step
from .errors import WorkflowError
from .model import StepSpec


# ---------------------------------------------------------------------
# `uses:` steps -> provisioning instructions
# ---------------------------------------------------------------------
# Workflow steps that reference an action are not commands checkrun can run.
# Each supported action is compiled into what the environment factory
# needs: a checkout, setup steps, and environment variables for the job.


@dataclass
class ActionPlan:
    checkout: bool = False
    setup: List[StepSpec] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)


ActionHandler = Callable[[str, Dict[str, Any]], ActionPlan]


def _checkout(name: str, inputs: Dict[str, Any]) -> ActionPlan:
    return ActionPlan(checkout=True)


def _split_components(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [c.strip() for c in value.replace(",", " ").split() if c.strip()]
    return [str(c) for c in value]


def _rust_toolchain(name: str, inputs: Dict[str, Any]) -> ActionPlan:
    version = str(inputs.get("rust-version") or inputs.get("toolchain") or "stable")
    args = ["toolchain", "install", version, "--profile", "minimal"]
    for component in _split_components(inputs.get("components")):
        args.extend(["--component", component])
    return ActionPlan(
        setup=[step(name, "rustup", *args)],
        env={"RUSTUP_TOOLCHAIN": version},
    )


ACTIONS: Dict[str, ActionHandler] = {
    "actions/checkout": _checkout,
    "ATiltedTree/setup-rust": _rust_toolchain,
    "dtolnay/rust-toolchain": _rust_toolchain,
    "actions-rs/toolchain": _rust_toolchain,
}


def register_action(repo: str, handler: ActionHandler) -> None:
    """Teach the loader a new `uses:` action (keyed without the @version)."""
    ACTIONS[repo] = handler


def compile_action(uses: str, name: str, inputs: Dict[str, Any] | None = None, *, job: str | None = None) -> ActionPlan:
    repo, _, version = uses.partition("@")
    handler = ACTIONS.get(repo)
    if handler is None:
        raise WorkflowError(
            f"unsupported action: {uses}",
            job=job,
            step=name,
            supported=", ".join(sorted(ACTIONS)),
        )
    # dtolnay/rust-toolchain encodes the toolchain in the ref
    inputs = dict(inputs or {})
    if repo == "dtolnay/rust-toolchain" and version and "toolchain" not in inputs:
        inputs["toolchain"] = version
    return handler(name, inputs)
