from __future__ import annotations

import logging

from ..history.model import History
from ..history.rules import ArchRules, Violation
from ..lifecycle import state_of
from .predicates import ConstraintContext, PREDICATES
from .schema import RuleDef, RulesetDef

logger = logging.getLogger(__name__)


def _select_items(rule: RuleDef, ctx: ConstraintContext) -> list:
    selector = rule.selector

    if rule.scope == "connector":
        names = sorted(ctx.history.catalog.connectors)
        wanted = selector.connectors
        if wanted:
            names = [n for n in names if n in wanted]
        return names

    if rule.scope == "invocation":
        invs = sorted(ctx.history.invocations.values(), key=lambda i: i.id)
        methods = selector.methods
        states = selector.states
        if methods:
            invs = [i for i in invs if i.method in methods]
        if states:
            invs = [i for i in invs if state_of(i).value in states]
        return invs

    # "history": evaluate once with a context-only item.
    return [None]


def run_constraints(
    history: History,
    *,
    ruleset: RulesetDef,
    allowed_rule_ids: set[str] | None = None,
    invariant_filter: str | None = None,
) -> list[Violation]:
    """
    Evaluate a ruleset against a history.

    Args:
        history: Loaded history
        ruleset: Ruleset to evaluate
        allowed_rule_ids: Optional set of rule IDs to filter
        invariant_filter: Optional invariant ID to filter
    """
    ctx = ConstraintContext(history=history, checks=ArchRules(history))

    results: list[Violation] = []

    for rule in ruleset.rules:
        if allowed_rule_ids is not None and rule.id not in allowed_rule_ids:
            continue
        if invariant_filter and rule.invariant != invariant_filter:
            continue

        fn = PREDICATES.get(rule.predicate.name)
        if fn is None:
            logger.warning("rule %s: unknown predicate %r, skipped", rule.id, rule.predicate.name)
            continue

        for item in _select_items(rule, ctx):
            results.extend(fn(item, rule, ctx))

    logger.debug("ruleset %s v%d: %d finding(s)", ruleset.ruleset_id, ruleset.version, len(results))
    return results
