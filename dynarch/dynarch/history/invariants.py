"""
Invariant categories for architecture histories.

Each rule maps to exactly one category:
- Structural: deployment totality; a failure makes the snapshot unsound
- Catalog: static bindings between interfaces, ports and connectors
- Connectivity: connectors only join physically reachable components
- Routing: invocations enter and leave connector buffers at the right steps
- Capability: receivers offer the invoked method
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class Invariant:
    """A category of findings enforced by one or more rules."""
    id: str
    name: str
    statement: str
    failure_mode: str
    rules: List[str]


INVARIANT_ORDER = ["structural", "catalog", "connectivity", "routing", "capability"]

INVARIANTS = {
    "structural": Invariant(
        id="structural",
        name="Structural",
        statement="Every component is hosted by exactly one node and every port is used by exactly one component, at every step.",
        failure_mode="Snapshot is unsound; no query against it is meaningful",
        rules=["component-hosting", "port-ownership"],
    ),
    "catalog": Invariant(
        id="catalog",
        name="Catalog",
        statement="Interfaces, ports and connectors are bound one-to-one.",
        failure_mode="Orphan interfaces, unbound ports, incomplete histories",
        rules=["interface-binding", "port-connector-binding", "port-endpoint-coverage"],
    ),
    "connectivity": Invariant(
        id="connectivity",
        name="Connectivity",
        statement="A connector only joins components that are co-located or on linked nodes; declared marks hold.",
        failure_mode="Logical routes without a physical path",
        rules=["unreachable-connection", "reliability-regression", "locality-breach"],
    ),
    "routing": Invariant(
        id="routing",
        name="Routing",
        statement="An invocation is buffered by exactly one connector when invoked, retired by exactly one when executed, and buffered only in between.",
        failure_mode="Duplicated, lost or stale in-flight invocations",
        rules=[
            "setup-connector-count",
            "setup-buffer-count",
            "setup-misrouted",
            "setup-carried-over",
            "buffered-while-unissued",
            "execute-without-invoke",
            "execute-before-invoke",
            "execute-buffer-count",
            "execute-not-retired",
            "buffered-after-execute",
            "pending-unbuffered",
        ],
    ),
    "capability": Invariant(
        id="capability",
        name="Capability",
        statement="Every receiver of an invoked call provides an interface listing the invoked method.",
        failure_mode="Calls delivered to ports that cannot serve them",
        rules=["capability-missing"],
    ),
}


def get_invariant_for_rule(rule_id: str) -> Optional[Invariant]:
    """Look up which category a rule belongs to, or None if unmapped."""
    for inv in INVARIANTS.values():
        if rule_id in inv.rules:
            return inv
    return None
