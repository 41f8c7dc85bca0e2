# trigger.py
from __future__ import annotations

from typing import Iterable

from .model import Event, EventKind, TriggerRule


def matches(event: Event, rule: TriggerRule) -> bool:
    """
    True iff the event kind and branch are both accepted by the rule.

    An empty branch set matches no branch.
    """
    return event.kind in rule.event_kinds and event.branch in rule.branches


def on(*kinds: str | EventKind, branches: Iterable[str] = ()) -> TriggerRule:
    """Build a rule: on("push", branches=["trunk", "devel"]). No kinds means push."""
    return TriggerRule(
        event_kinds=frozenset(EventKind(k) for k in kinds) or frozenset({EventKind.PUSH}),
        branches=frozenset(branches),
    )
