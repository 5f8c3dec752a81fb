"""Physical topology queries: hosting, links, reachability."""

from __future__ import annotations

from .model import Step


def hosts_of(step: Step, component: str) -> frozenset[str]:
    """Raw set of nodes hosting a component (cardinality unchecked)."""
    return step.hosts.get(component, frozenset())


def host_of(step: Step, component: str) -> str | None:
    """The single hosting node, or None when there is not exactly one."""
    nodes = hosts_of(step, component)
    if len(nodes) != 1:
        return None
    return next(iter(nodes))


def linked(step: Step, n1: str, n2: str) -> bool:
    """True if some link at this step connects both nodes."""
    return any(n1 in nodes and n2 in nodes for nodes in step.links.values())


def reachable(step: Step, c1: str, c2: str) -> bool:
    """Components are co-located or their hosting nodes share a link."""
    h1 = host_of(step, c1)
    h2 = host_of(step, c2)
    if h1 is None or h2 is None:
        return False
    return h1 == h2 or linked(step, h1, h2)
