"""Connector fabric: which components a connector joins, and its properties over time."""

from __future__ import annotations

from itertools import combinations

from .model import Catalog, History, Step
from .topology import host_of


def connects(catalog: Catalog, step: Step, connector: str) -> frozenset[str]:
    """Components using the connector's in or out port at this step."""
    conn = catalog.connectors[connector]
    ports = set(conn.ports)
    if not ports:
        return frozenset()
    return frozenset(c for c, used in step.uses.items() if used & ports)


def caller_connectors(catalog: Catalog, step: Step, port: str) -> list[str]:
    """Connectors a call from `port` enters on: those with `port` as in port, while it is used."""
    if not step.owners(port):
        return []
    return sorted(name for name, conn in catalog.connectors.items() if conn.in_port == port)


def buffering_connectors(step: Step, invocation_id: str) -> list[str]:
    """Connectors holding the invocation in their buffer at this step."""
    return sorted(name for name, ids in step.buffers.items() if invocation_id in ids)


def connected_pairs(catalog: Catalog, step: Step, connector: str) -> list[tuple[str, str]]:
    """Distinct component pairs joined simultaneously by the connector."""
    return list(combinations(sorted(connects(catalog, step, connector)), 2))


def dropped_components(history: History, connector: str, index: int) -> frozenset[str]:
    """Components connected at `index` but no longer at the next step."""
    nxt = history.next_step(index)
    if nxt is None:
        return frozenset()
    now = connects(history.catalog, history.step(index), connector)
    later = connects(history.catalog, nxt, connector)
    return now - later


def is_reliable(history: History, connector: str) -> bool:
    """Once joined, no component ever drops off the connector."""
    return all(
        not dropped_components(history, connector, step.index)
        for step in history.steps
    )


def pair_nodes(catalog: Catalog, step: Step, connector: str) -> set[str | None]:
    """Hosting nodes of components in a connected pair at this step."""
    nodes: set[str | None] = set()
    for c1, c2 in connected_pairs(catalog, step, connector):
        nodes.add(host_of(step, c1))
        nodes.add(host_of(step, c2))
    return nodes


def is_local(history: History, connector: str) -> bool:
    """Every pair the connector ever joins sits on one single fixed node."""
    nodes: set[str | None] = set()
    for step in history.steps:
        nodes |= pair_nodes(history.catalog, step, connector)
    return None not in nodes and len(nodes) <= 1


def get_connectors(history: History, c1: str, c2: str) -> list[str]:
    """Connectors joining c1 at some step and c2 at some, possibly different, step."""
    found = []
    for name in sorted(history.catalog.connectors):
        seen = set()
        for step in history.steps:
            seen |= connects(history.catalog, step, name)
        if c1 in seen and c2 in seen:
            found.append(name)
    return found
