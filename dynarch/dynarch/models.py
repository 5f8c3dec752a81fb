"""Data models for architecture entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    """Closed set of entity kinds a finding can point at."""

    INTERFACE = "interface"
    COMPONENT = "component"
    PORT = "port"
    CONNECTOR = "connector"
    INVOCATION = "invocation"


@dataclass(frozen=True)
class EntityRef:
    """Tagged reference to one entity in a history."""

    kind: EntityKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass(frozen=True)
class Interface:
    """A named set of methods."""

    name: str
    methods: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Port:
    """Grouping of required/provided interfaces."""

    name: str
    requires: frozenset[str] = field(default_factory=frozenset)  # interface names
    provides: frozenset[str] = field(default_factory=frozenset)  # interface names


@dataclass(frozen=True)
class Connector:
    """Routes invocations between at most one inbound and one outbound port."""

    name: str
    in_port: str | None = None
    out_port: str | None = None
    reliable: bool = False  # declared mark, checked by reliability-regression
    local: bool = False  # declared mark, checked by locality-breach

    @property
    def ports(self) -> tuple[str, ...]:
        return tuple(p for p in (self.in_port, self.out_port) if p is not None)


@dataclass(frozen=True)
class Invocation:
    """A reified call record.

    `invoked` and `executed` are step indices. Arguments are opaque and are
    never compared by any query.
    """

    id: str
    method: str | None = None
    caller: str | None = None
    receivers: frozenset[str] = field(default_factory=frozenset)
    invoked: int | None = None
    executed: int | None = None
    args: Any = None

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityKind.INVOCATION, self.id)
