"""Batch validation of a complete history."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from .constraints import run_constraints
from .constraints.schema import RulesetDef
from .history.invariants import INVARIANTS
from .history.model import History
from .history.rules import ArchRules, Violation

LEVEL_ORDER = {"error": 0, "warning": 1, "info": 2}


@dataclass
class ValidationReport:
    """Pass/fail verdict plus every itemized finding."""

    violations: list[Violation] = field(default_factory=list)
    ruleset_id: str | None = None

    @property
    def counts(self) -> dict[str, int]:
        counts = Counter(v.level for v in self.violations)
        return {level: counts.get(level, 0) for level in LEVEL_ORDER}

    @property
    def passed(self) -> bool:
        return self.counts["error"] == 0

    def fails_on(self, level: str) -> bool:
        counts = self.counts
        if level == "warning":
            return counts["error"] > 0 or counts["warning"] > 0
        return counts["error"] > 0

    def by_rule(self, rule_id: str) -> list[Violation]:
        return [v for v in self.violations if v.rule == rule_id]


def validate(
    history: History,
    *,
    ruleset: RulesetDef | None = None,
    invariant_filter: str | None = None,
) -> ValidationReport:
    """Check every invariant across every step; all findings are collected."""
    allowed = None
    if invariant_filter:
        inv = INVARIANTS.get(invariant_filter)
        if inv is None:
            raise ValueError(f"unknown invariant: {invariant_filter}")
        allowed = set(inv.rules)

    if ruleset is not None:
        results = run_constraints(history, ruleset=ruleset, invariant_filter=invariant_filter)
    else:
        results = ArchRules(history).run_all(allowed_rules=allowed)

    results.sort(key=lambda v: (LEVEL_ORDER.get(v.level, 99), v.step if v.step is not None else -1, v.rule))
    return ValidationReport(violations=results, ruleset_id=ruleset.ruleset_id if ruleset else None)
