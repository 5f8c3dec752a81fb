"""Invariant rules for architecture histories."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Literal

from ..models import EntityKind, EntityRef, Invocation
from .fabric import buffering_connectors, caller_connectors, connected_pairs, connects, is_local
from .invariants import get_invariant_for_rule
from .model import Catalog, History, Step
from .topology import hosts_of, reachable

Level = Literal["error", "warning", "info"]


@dataclass
class Violation:
    """A single invariant finding."""

    level: Level
    rule: str
    message: str
    entity: EntityRef | None = None
    step: int | None = None
    invariant: str | None = field(default=None)

    def __post_init__(self):
        if self.invariant is None:
            inv = get_invariant_for_rule(self.rule)
            self.invariant = inv.id if inv else None

    def __str__(self) -> str:
        loc = str(self.entity) if self.entity else "history"
        if self.step is not None:
            loc += f"@{self.step}"
        return f"{self.level.upper()}: [{self.rule}] {loc} - {self.message}"

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "rule": self.rule,
            "message": self.message,
            "entity": str(self.entity) if self.entity else None,
            "step": self.step,
            "invariant": self.invariant,
        }


RULE_EXPLANATIONS: dict[str, str] = {
    "component-hosting": "Every component is hosted by exactly one node at every step.",
    "port-ownership": "Every port is used by exactly one component at every step.",
    "interface-binding": "Every interface is required by exactly one port and provided by exactly one port.",
    "port-connector-binding": "Every port is the in port of exactly one connector and the out port of exactly one connector.",
    "port-endpoint-coverage": "In a fully-populated history every port is the caller of exactly one invocation and a receiver of exactly one.",
    "unreachable-connection": "Components joined by a connector at a step are co-located or hosted on linked nodes.",
    "reliability-regression": "A connector marked reliable never loses a component it has joined.",
    "locality-breach": "A connector marked local joins components on one single fixed node across all time.",
    "setup-connector-count": "At its invoked step the caller port is the in port of exactly one connector, the one the call enters on.",
    "setup-buffer-count": "At its invoked step the invocation is buffered by exactly one connector.",
    "setup-misrouted": "At its invoked step the invocation sits in the caller's connector.",
    "setup-carried-over": "At its invoked step the invocation is freshly enqueued, not present in the same buffer one step earlier.",
    "buffered-while-unissued": "An invocation never appears in a buffer before it is invoked.",
    "execute-without-invoke": "An executed invocation has an invoked step.",
    "execute-before-invoke": "An invocation is not executed before it is invoked.",
    "execute-buffer-count": "At its executed step the invocation is buffered by exactly one connector.",
    "execute-not-retired": "The executing connector drops the invocation at the next step.",
    "buffered-after-execute": "An invocation never appears in a buffer after it is executed.",
    "pending-unbuffered": "A pending invocation is locatable in some connector buffer.",
    "capability-missing": "Every receiver of an invoked call provides an interface listing the method.",
}


def _ref(kind: EntityKind, name: str) -> EntityRef:
    return EntityRef(kind, name)


# ---------------------------------------------------------------------------
# Per-step checks. Each takes only the frames it needs so the online monitor
# can run them over a one-step window.
# ---------------------------------------------------------------------------


def check_component_hosting(catalog: Catalog, step: Step) -> list[Violation]:
    results = []
    for component in catalog.components:
        nodes = hosts_of(step, component)
        if len(nodes) != 1:
            where = ", ".join(sorted(nodes)) if nodes else "no node"
            results.append(
                Violation(
                    level="error",
                    rule="component-hosting",
                    message=f"Component hosted by {len(nodes)} node(s) ({where})",
                    entity=_ref(EntityKind.COMPONENT, component),
                    step=step.index,
                )
            )
    return results


def check_port_ownership(catalog: Catalog, step: Step) -> list[Violation]:
    results = []
    for port in catalog.ports:
        owners = step.owners(port)
        if len(owners) != 1:
            who = ", ".join(sorted(owners)) if owners else "no component"
            results.append(
                Violation(
                    level="error",
                    rule="port-ownership",
                    message=f"Port used by {len(owners)} component(s) ({who})",
                    entity=_ref(EntityKind.PORT, port),
                    step=step.index,
                )
            )
    return results


def check_unreachable_connections(catalog: Catalog, step: Step) -> list[Violation]:
    results = []
    for name in sorted(catalog.connectors):
        bad = [(c1, c2) for c1, c2 in connected_pairs(catalog, step, name) if not reachable(step, c1, c2)]
        if bad:
            pairs = ", ".join(f"{c1}<->{c2}" for c1, c2 in bad)
            results.append(
                Violation(
                    level="error",
                    rule="unreachable-connection",
                    message=f"Connector joins components without a physical path: {pairs}",
                    entity=_ref(EntityKind.CONNECTOR, name),
                    step=step.index,
                )
            )
    return results


def check_reliability(catalog: Catalog, step: Step, nxt: Step) -> list[Violation]:
    """Marked-reliable connectors must keep every component from `step` into `nxt`."""
    results = []
    for name, conn in sorted(catalog.connectors.items()):
        if not conn.reliable:
            continue
        dropped = connects(catalog, step, name) - connects(catalog, nxt, name)
        if dropped:
            results.append(
                Violation(
                    level="error",
                    rule="reliability-regression",
                    message=f"Reliable connector drops {', '.join(sorted(dropped))} at the next step",
                    entity=_ref(EntityKind.CONNECTOR, name),
                    step=step.index,
                )
            )
    return results


def check_setup(catalog: Catalog, inv: Invocation, step: Step) -> list[Violation]:
    """Setup rule at the invoked step: one caller connector, one buffer, the right one."""
    results = []
    ref = inv.ref
    entries = caller_connectors(catalog, step, inv.caller) if inv.caller else []
    holders = buffering_connectors(step, inv.id)

    if len(entries) != 1:
        results.append(
            Violation(
                level="error",
                rule="setup-connector-count",
                message=f"Caller port {inv.caller!r} is the in port of {len(entries)} connector(s)",
                entity=ref,
                step=step.index,
            )
        )
    if len(holders) != 1:
        where = f" ({', '.join(holders)})" if holders else ""
        results.append(
            Violation(
                level="error",
                rule="setup-buffer-count",
                message=f"Invocation buffered by {len(holders)} connector(s) when invoked{where}",
                entity=ref,
                step=step.index,
            )
        )
    if len(entries) == 1 and entries[0] not in holders:
        results.append(
            Violation(
                level="error",
                rule="setup-misrouted",
                message=f"Invocation is not in the caller's connector {entries[0]!r}",
                entity=ref,
                step=step.index,
            )
        )
    return results


def check_carry_over(inv: Invocation, prev: Step, step: Step) -> list[Violation]:
    """Buffers one step before the invoked step: carried over, or stray."""
    results = []
    holders_now = set(buffering_connectors(step, inv.id))
    for name in buffering_connectors(prev, inv.id):
        if name in holders_now:
            results.append(
                Violation(
                    level="error",
                    rule="setup-carried-over",
                    message=f"Invocation already present in {name!r} before it was invoked",
                    entity=inv.ref,
                    step=step.index,
                )
            )
        else:
            results.append(
                Violation(
                    level="error",
                    rule="buffered-while-unissued",
                    message=f"Invocation buffered in {name!r} before it was invoked",
                    entity=inv.ref,
                    step=prev.index,
                )
            )
    return results


def check_execute(inv: Invocation, step: Step) -> list[Violation]:
    """Execute rule at the executed step: issued, ordered, one buffer."""
    results = []
    if inv.invoked is None:
        results.append(
            Violation(
                level="error",
                rule="execute-without-invoke",
                message="Invocation executed but never invoked",
                entity=inv.ref,
                step=step.index,
            )
        )
    elif inv.executed is not None and inv.executed < inv.invoked:
        results.append(
            Violation(
                level="error",
                rule="execute-before-invoke",
                message=f"Executed at step {inv.executed}, before invoked at step {inv.invoked}",
                entity=inv.ref,
                step=step.index,
            )
        )
    holders = buffering_connectors(step, inv.id)
    if len(holders) != 1:
        where = f" ({', '.join(holders)})" if holders else ""
        results.append(
            Violation(
                level="error",
                rule="execute-buffer-count",
                message=f"Invocation buffered by {len(holders)} connector(s) when executed{where}",
                entity=inv.ref,
                step=step.index,
            )
        )
    return results


def check_retirement(inv: Invocation, step: Step, nxt: Step) -> list[Violation]:
    """Buffers one step after the executed step: not retired, or stray."""
    results = []
    holders_then = set(buffering_connectors(step, inv.id))
    for name in buffering_connectors(nxt, inv.id):
        if name in holders_then:
            results.append(
                Violation(
                    level="error",
                    rule="execute-not-retired",
                    message=f"Connector {name!r} still buffers the invocation after executing it",
                    entity=inv.ref,
                    step=step.index,
                )
            )
        else:
            results.append(
                Violation(
                    level="error",
                    rule="buffered-after-execute",
                    message=f"Invocation buffered in {name!r} after it was executed",
                    entity=inv.ref,
                    step=nxt.index,
                )
            )
    return results


def check_buffer_window(inv: Invocation, step: Step) -> list[Violation]:
    """Buffering at a step outside the one-step neighbourhoods owned by Setup and Execute."""
    s = step.index
    holders = buffering_connectors(step, inv.id)

    if inv.invoked is None or s < inv.invoked - 1:
        if holders:
            return [
                Violation(
                    level="error",
                    rule="buffered-while-unissued",
                    message=f"Invocation buffered in {', '.join(holders)} before it was invoked",
                    entity=inv.ref,
                    step=s,
                )
            ]
        return []

    if inv.executed is not None and s > inv.executed + 1:
        if holders:
            return [
                Violation(
                    level="error",
                    rule="buffered-after-execute",
                    message=f"Invocation buffered in {', '.join(holders)} after it was executed",
                    entity=inv.ref,
                    step=s,
                )
            ]
        return []

    pending = s > inv.invoked and (inv.executed is None or s < inv.executed)
    if pending and not holders:
        return [
            Violation(
                level="warning",
                rule="pending-unbuffered",
                message="Pending invocation is in no connector buffer",
                entity=inv.ref,
                step=s,
            )
        ]
    return []


def check_unknown_buffered(step: Step, known: Iterable[str]) -> list[Violation]:
    """Buffered ids that match no invocation record are never issued."""
    known_ids = set(known)
    results = []
    for name, ids in sorted(step.buffers.items()):
        for inv_id in sorted(ids - known_ids):
            results.append(
                Violation(
                    level="error",
                    rule="buffered-while-unissued",
                    message=f"Unknown invocation buffered in {name!r}",
                    entity=_ref(EntityKind.INVOCATION, inv_id),
                    step=step.index,
                )
            )
    return results


# ---------------------------------------------------------------------------
# Static checks
# ---------------------------------------------------------------------------


def check_interface_binding(catalog: Catalog) -> list[Violation]:
    results = []
    for name in sorted(catalog.interfaces):
        requirers = [p.name for p in catalog.ports.values() if name in p.requires]
        providers = [p.name for p in catalog.ports.values() if name in p.provides]
        for role, ports in (("required", requirers), ("provided", providers)):
            if len(ports) != 1:
                who = ", ".join(sorted(ports)) if ports else "no port"
                results.append(
                    Violation(
                        level="error",
                        rule="interface-binding",
                        message=f"Interface {role} by {len(ports)} port(s) ({who})",
                        entity=_ref(EntityKind.INTERFACE, name),
                    )
                )
    return results


def check_port_connector_binding(catalog: Catalog) -> list[Violation]:
    results = []
    ins = Counter(c.in_port for c in catalog.connectors.values() if c.in_port)
    outs = Counter(c.out_port for c in catalog.connectors.values() if c.out_port)
    for port in sorted(catalog.ports):
        for side, counts in (("in", ins), ("out", outs)):
            if counts[port] != 1:
                results.append(
                    Violation(
                        level="warning",
                        rule="port-connector-binding",
                        message=f"Port is the {side} port of {counts[port]} connector(s)",
                        entity=_ref(EntityKind.PORT, port),
                    )
                )
    return results


def check_port_endpoint_coverage(catalog: Catalog, invocations: Iterable[Invocation]) -> list[Violation]:
    results = []
    invs = list(invocations)
    as_caller = Counter(i.caller for i in invs if i.caller)
    as_receiver = Counter(p for i in invs for p in i.receivers)
    for port in sorted(catalog.ports):
        for role, counts in (("caller", as_caller), ("receiver", as_receiver)):
            if counts[port] != 1:
                results.append(
                    Violation(
                        level="warning",
                        rule="port-endpoint-coverage",
                        message=f"Port is the {role} of {counts[port]} invocation(s)",
                        entity=_ref(EntityKind.PORT, port),
                    )
                )
    return results


def capability_findings(catalog: Catalog, invocations: Iterable[Invocation]) -> list[Violation]:
    """Receivers of invoked calls that do not provide the invoked method."""
    results = []
    for inv in sorted(invocations, key=lambda i: i.id):
        if inv.invoked is None:
            continue
        for receiver in sorted(inv.receivers):
            if inv.method not in catalog.provided_methods(receiver):
                results.append(
                    Violation(
                        level="warning",
                        rule="capability-missing",
                        message=f"Receiver {receiver!r} provides no interface listing {inv.method!r}",
                        entity=inv.ref,
                    )
                )
    return results


def locality_findings(history: History) -> list[Violation]:
    results = []
    for name, conn in sorted(history.catalog.connectors.items()):
        if conn.local and not is_local(history, name):
            results.append(
                Violation(
                    level="error",
                    rule="locality-breach",
                    message="Local connector joins components on more than one node",
                    entity=_ref(EntityKind.CONNECTOR, name),
                )
            )
    return results


# ---------------------------------------------------------------------------
# Batch runner
# ---------------------------------------------------------------------------


class ArchRules:
    """Collection of invariant checks over a complete history."""

    def __init__(self, history: History):
        self.history = history
        self.catalog = history.catalog

    def _invocations(self) -> list[Invocation]:
        return sorted(self.history.invocations.values(), key=lambda i: i.id)

    def run_all(self, allowed_rules: set[str] | None = None) -> list[Violation]:
        """Run every check and return all findings; never stops at the first one."""
        results: list[Violation] = []
        for method_name in dict.fromkeys(RULE_CHECKS.values()):
            results.extend(getattr(self, method_name)())
        if allowed_rules is not None:
            results = [r for r in results if r.rule in allowed_rules]
        return results

    def run_rule(self, rule_id: str) -> list[Violation]:
        method_name = RULE_CHECKS.get(rule_id)
        if method_name is None:
            raise KeyError(rule_id)
        return [r for r in getattr(self, method_name)() if r.rule == rule_id]

    def check_structure(self) -> list[Violation]:
        results = []
        for step in self.history.steps:
            results.extend(check_component_hosting(self.catalog, step))
            results.extend(check_port_ownership(self.catalog, step))
        return results

    def check_catalog(self) -> list[Violation]:
        results = []
        results.extend(check_interface_binding(self.catalog))
        results.extend(check_port_connector_binding(self.catalog))
        results.extend(check_port_endpoint_coverage(self.catalog, self._invocations()))
        return results

    def check_connectivity(self) -> list[Violation]:
        results = []
        for step in self.history.steps:
            results.extend(check_unreachable_connections(self.catalog, step))
            nxt = self.history.next_step(step.index)
            if nxt is not None:
                results.extend(check_reliability(self.catalog, step, nxt))
        results.extend(locality_findings(self.history))
        return results

    def check_routing(self) -> list[Violation]:
        results = []
        for step in self.history.steps:
            results.extend(check_unknown_buffered(step, self.history.invocations))
        for inv in self._invocations():
            if inv.invoked is not None:
                step = self.history.step(inv.invoked)
                results.extend(check_setup(self.catalog, inv, step))
                prev = self.history.prev_step(inv.invoked)
                if prev is not None:
                    results.extend(check_carry_over(inv, prev, step))
            if inv.executed is not None:
                step = self.history.step(inv.executed)
                results.extend(check_execute(inv, step))
                nxt = self.history.next_step(inv.executed)
                if nxt is not None:
                    results.extend(check_retirement(inv, step, nxt))
            for step in self.history.steps:
                results.extend(check_buffer_window(inv, step))
        return results

    def check_capability(self) -> list[Violation]:
        return capability_findings(self.catalog, self._invocations())


RULE_CHECKS: dict[str, str] = {
    "component-hosting": "check_structure",
    "port-ownership": "check_structure",
    "interface-binding": "check_catalog",
    "port-connector-binding": "check_catalog",
    "port-endpoint-coverage": "check_catalog",
    "unreachable-connection": "check_connectivity",
    "reliability-regression": "check_connectivity",
    "locality-breach": "check_connectivity",
    "setup-connector-count": "check_routing",
    "setup-buffer-count": "check_routing",
    "setup-misrouted": "check_routing",
    "setup-carried-over": "check_routing",
    "buffered-while-unissued": "check_routing",
    "execute-without-invoke": "check_routing",
    "execute-before-invoke": "check_routing",
    "execute-buffer-count": "check_routing",
    "execute-not-retired": "check_routing",
    "buffered-after-execute": "check_routing",
    "pending-unbuffered": "check_routing",
    "capability-missing": "check_capability",
}


def get_rule_ids() -> list[str]:
    return list(RULE_CHECKS)
