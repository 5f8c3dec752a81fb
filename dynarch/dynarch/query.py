"""
Query layer: Invoke, Invoked, Execute and TypeChecking.

`invoke` is a plain constructor. The read queries refuse to answer on a
structurally unsound history (a component without exactly one host, a port
without exactly one owner), since none of their answers would be meaningful.

`execute` here is stricter than the Execute routing rule: the connector
buffering the call must also join the named receiver at that step.

Step arguments are step indices or labels; anything outside the timeline
raises `ValueError`.
"""

from __future__ import annotations

from typing import Any, Iterable

from .history.fabric import buffering_connectors, connects
from .history.model import History
from .history.rules import (
    Violation,
    capability_findings,
    check_component_hosting,
    check_port_ownership,
)
from .models import Invocation


class StructuralViolationError(Exception):
    """Raised when a query runs against a structurally unsound history."""

    def __init__(self, violations: list[Violation]):
        self.violations = violations
        first = violations[0] if violations else None
        more = f" (+{len(violations) - 1} more)" if len(violations) > 1 else ""
        super().__init__(f"history is structurally unsound: {first}{more}")


def structural_violations(history: History) -> list[Violation]:
    results = []
    for step in history.steps:
        results.extend(check_component_hosting(history.catalog, step))
        results.extend(check_port_ownership(history.catalog, step))
    return [r for r in results if r.level == "error"]


def require_sound(history: History) -> None:
    violations = structural_violations(history)
    if violations:
        raise StructuralViolationError(violations)


def invoke(
    history: History,
    caller: str,
    receivers: Iterable[str],
    method: str,
    args: Any,
    at: int | str,
    *,
    invocation_id: str | None = None,
) -> Invocation:
    """Create and register an invocation issued at step `at`."""
    at = history.timeline.resolve(at)
    inv = Invocation(
        id=invocation_id or history.next_invocation_id(),
        method=method,
        caller=caller,
        receivers=frozenset(receivers),
        invoked=at,
        args=args,
    )
    if inv.id in history.invocations:
        raise ValueError(f"invocation id already in use: {inv.id}")
    history.invocations[inv.id] = inv
    return inv


def _matching(history: History, caller: str, receiver: str, method: str) -> list[Invocation]:
    return [
        inv
        for inv in history.invocations.values()
        if inv.method == method and inv.caller == caller and receiver in inv.receivers
    ]


def invoked(history: History, caller: str, receiver: str, method: str, args: Any, at: int | str) -> bool:
    """True iff a matching invocation was issued at step `at`. Arguments are not compared."""
    require_sound(history)
    at = history.timeline.resolve(at)
    return any(inv.invoked == at for inv in _matching(history, caller, receiver, method))


def execute(history: History, caller: str, receiver: str, method: str, args: Any, at: int | str) -> bool:
    """True iff a matching invocation executed at `at` through a connector reaching `receiver`."""
    require_sound(history)
    at = history.timeline.resolve(at)
    step = history.step(at)
    receiver_components = step.owners(receiver)
    for inv in _matching(history, caller, receiver, method):
        if inv.executed != at:
            continue
        for name in buffering_connectors(step, inv.id):
            if receiver_components & connects(history.catalog, step, name):
                return True
    return False


def type_checking(history: History) -> list[Violation]:
    """Capability findings for the whole history; an empty list means sound."""
    require_sound(history)
    return capability_findings(history.catalog, history.invocations.values())
