"""
Ruleset records.

A rule targets one scope of an architecture history:
- history: evaluated once over the whole snapshot (built-in checks)
- connector: evaluated per connector, optionally narrowed by name
- invocation: evaluated per invocation, optionally narrowed by method and lifecycle state
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


Scope = Literal["history", "connector", "invocation"]
Severity = Literal["error", "warning", "info"]


def _str_set(value: Any) -> frozenset[str]:
    if isinstance(value, str):
        return frozenset({value.strip()}) if value.strip() else frozenset()
    if isinstance(value, list):
        return frozenset(str(v).strip() for v in value if str(v).strip())
    return frozenset()


@dataclass(frozen=True)
class Selector:
    """Narrows the items a rule visits; an empty filter keeps everything."""

    kind: str
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def connectors(self) -> frozenset[str]:
        """Connector names (`names`), for connector scope."""
        return _str_set(self.params.get("names"))

    @property
    def methods(self) -> frozenset[str]:
        """Invoked method names (`method`), for invocation scope."""
        return _str_set(self.params.get("method"))

    @property
    def states(self) -> frozenset[str]:
        """Lifecycle states (`state`: unissued, pending, completed), for invocation scope."""
        return frozenset(s.lower() for s in _str_set(self.params.get("state")))


@dataclass(frozen=True)
class Predicate:
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RuleDef:
    """One ruleset entry; `invariant` re-attributes findings to a category."""

    id: str
    scope: Scope
    severity: Severity = "error"
    invariant: str | None = None
    selector: Selector = field(default_factory=lambda: Selector(kind="all"))
    predicate: Predicate = field(default_factory=lambda: Predicate(name="noop"))
    message: str | None = None
    rationale: str | None = None


@dataclass(frozen=True)
class RulesetDef:
    ruleset_id: str
    version: int
    description: str | None = None
    rules: list[RuleDef] = field(default_factory=list)
