"""Static catalog, per-step frames and the history container."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models import Connector, Interface, Invocation, Port
from ..timeline import Timeline


@dataclass
class Catalog:
    """Facts that do not vary over time."""

    nodes: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    interfaces: dict[str, Interface] = field(default_factory=dict)
    ports: dict[str, Port] = field(default_factory=dict)
    connectors: dict[str, Connector] = field(default_factory=dict)

    def provided_methods(self, port: str) -> frozenset[str]:
        """Methods listed by any interface the port provides."""
        p = self.ports.get(port)
        if p is None:
            return frozenset()
        methods: set[str] = set()
        for name in p.provides:
            iface = self.interfaces.get(name)
            if iface is not None:
                methods.update(iface.methods)
        return frozenset(methods)


@dataclass(frozen=True)
class Step:
    """Immutable facts of one time step.

    Every relation is stored as an explicit mapping; cardinality is checked by
    the rules, never assumed by storage.
    """

    index: int
    hosts: dict[str, frozenset[str]] = field(default_factory=dict)  # component -> nodes
    links: dict[str, frozenset[str]] = field(default_factory=dict)  # link -> nodes
    uses: dict[str, frozenset[str]] = field(default_factory=dict)  # component -> ports
    buffers: dict[str, frozenset[str]] = field(default_factory=dict)  # connector -> invocation ids

    def owners(self, port: str) -> frozenset[str]:
        """Components using the port at this step."""
        return frozenset(c for c, ports in self.uses.items() if port in ports)

    def buffer(self, connector: str) -> frozenset[str]:
        return self.buffers.get(connector, frozenset())


@dataclass
class History:
    """A time-indexed snapshot sequence plus its invocation table."""

    catalog: Catalog
    timeline: Timeline
    steps: list[Step] = field(default_factory=list)
    invocations: dict[str, Invocation] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.steps) != len(self.timeline):
            raise ValueError(
                f"history has {len(self.steps)} step frame(s) for a timeline of {len(self.timeline)}"
            )

    def step(self, index: int) -> Step:
        return self.steps[self.timeline.resolve(index)]

    def next_step(self, index: int) -> Step | None:
        nxt = self.timeline.next(index)
        return None if nxt is None else self.steps[nxt]

    def prev_step(self, index: int) -> Step | None:
        prv = self.timeline.prev(index)
        return None if prv is None else self.steps[prv]

    def replace_step(self, step: Step) -> None:
        self.steps[step.index] = step

    def next_invocation_id(self) -> str:
        n = len(self.invocations) + 1
        while f"inv-{n}" in self.invocations:
            n += 1
        return f"inv-{n}"
