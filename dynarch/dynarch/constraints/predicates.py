from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from ..history.fabric import is_local, is_reliable
from ..history.model import History
from ..history.rules import ArchRules, Violation
from ..models import EntityKind, EntityRef, Invocation
from .schema import RuleDef


@dataclass(frozen=True)
class ConstraintContext:
    history: History
    checks: ArchRules


PredicateFn = Callable[[Any, RuleDef, ConstraintContext], list[Violation]]


def _violation(
    *,
    rule: RuleDef,
    message: str,
    entity: EntityRef | None = None,
    step: int | None = None,
) -> Violation:
    return Violation(
        level=rule.severity,
        rule=rule.id,
        message=message,
        entity=entity,
        step=step,
        invariant=rule.invariant,
    )


def predicate_builtin_rule(item: Any, rule: RuleDef, ctx: ConstraintContext) -> list[Violation]:
    rule_id = str(rule.predicate.params.get("rule_id", rule.id)).strip()
    try:
        results = ctx.checks.run_rule(rule_id)
    except KeyError:
        return [_violation(rule=rule, message=f"Condition observed: unknown built-in rule_id={rule_id!r}")]

    severity = rule.predicate.params.get("severity")
    for r in results:
        # Override attribution from the ruleset, if provided.
        if rule.invariant is not None:
            r.invariant = rule.invariant
        if severity in ("error", "warning", "info"):
            r.level = severity
    return results


def predicate_connector_is_reliable(connector: str, rule: RuleDef, ctx: ConstraintContext) -> list[Violation]:
    if is_reliable(ctx.history, connector):
        return []
    msg = rule.message or "Condition observed: connector drops a component it had joined"
    return [_violation(rule=rule, message=msg, entity=EntityRef(EntityKind.CONNECTOR, connector))]


def predicate_connector_is_local(connector: str, rule: RuleDef, ctx: ConstraintContext) -> list[Violation]:
    if is_local(ctx.history, connector):
        return []
    msg = rule.message or "Condition observed: connector joins components on more than one node"
    return [_violation(rule=rule, message=msg, entity=EntityRef(EntityKind.CONNECTOR, connector))]


def predicate_pending_within(inv: Invocation, rule: RuleDef, ctx: ConstraintContext) -> list[Violation]:
    max_steps = rule.predicate.params.get("max_steps")
    if not isinstance(max_steps, int) or isinstance(max_steps, bool) or max_steps < 0:
        return []
    if inv.invoked is None:
        return []

    deadline = inv.invoked + max_steps
    if inv.executed is not None:
        if inv.executed <= deadline:
            return []
        msg = rule.message or f"Condition observed: executed {inv.executed - inv.invoked} step(s) after invoke"
        return [_violation(rule=rule, message=f"{msg} (max {max_steps})", entity=inv.ref, step=inv.executed)]

    if ctx.history.timeline.last < deadline:
        return []
    msg = rule.message or "Condition observed: still pending past its deadline"
    return [_violation(rule=rule, message=f"{msg} (max {max_steps})", entity=inv.ref, step=deadline)]


def predicate_receivers_provide_method(inv: Invocation, rule: RuleDef, ctx: ConstraintContext) -> list[Violation]:
    if inv.invoked is None:
        return []
    missing = [r for r in sorted(inv.receivers) if inv.method not in ctx.history.catalog.provided_methods(r)]
    if not missing:
        return []
    msg = rule.message or f"Condition observed: receivers lack method {inv.method!r}"
    return [_violation(rule=rule, message=f"{msg} ({', '.join(missing)})", entity=inv.ref)]


PREDICATES: dict[str, PredicateFn] = {
    "builtin_rule": predicate_builtin_rule,
    "connector_is_reliable": predicate_connector_is_reliable,
    "connector_is_local": predicate_connector_is_local,
    "pending_within": predicate_pending_within,
    "receivers_provide_method": predicate_receivers_provide_method,
}
