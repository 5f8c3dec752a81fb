"""Snapshot loading from YAML."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..models import Connector, Interface, Invocation, Port
from ..timeline import Timeline
from .model import Catalog, History, Step

logger = logging.getLogger(__name__)


class SnapshotError(ValueError):
    """The snapshot file is malformed or references unknown entities."""


def _names(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    if isinstance(value, dict):
        return [str(k) for k in value]
    raise SnapshotError(f"{what}: expected a list of names, got {type(value).__name__}")


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise SnapshotError(f"{what}: expected a mapping, got {type(value).__name__}")
    return value


def _check_known(names: list[str], known: set[str], what: str) -> None:
    unknown = [n for n in names if n not in known]
    if unknown:
        raise SnapshotError(f"{what}: unknown {', '.join(sorted(set(unknown)))}")


def _relation(
    raw: Any,
    *,
    keys: set[str],
    values: set[str],
    what: str,
) -> dict[str, frozenset[str]]:
    rel: dict[str, frozenset[str]] = {}
    for key, targets in _mapping(raw, what).items():
        key = str(key)
        _check_known([key], keys, what)
        names = _names(targets, f"{what}.{key}")
        _check_known(names, values, f"{what}.{key}")
        rel[key] = frozenset(names)
    return rel


def _build_catalog(data: dict) -> Catalog:
    catalog = Catalog(
        nodes=_names(data.get("nodes"), "nodes"),
        links=_names(data.get("links"), "links"),
        methods=_names(data.get("methods"), "methods"),
        components=_names(data.get("components"), "components"),
    )
    methods = set(catalog.methods)

    for name, raw in _mapping(data.get("interfaces"), "interfaces").items():
        iface_methods = _names(raw, f"interfaces.{name}")
        _check_known(iface_methods, methods, f"interfaces.{name}")
        catalog.interfaces[str(name)] = Interface(name=str(name), methods=frozenset(iface_methods))

    interfaces = set(catalog.interfaces)
    for name, raw in _mapping(data.get("ports"), "ports").items():
        raw = _mapping(raw, f"ports.{name}")
        requires = _names(raw.get("requires"), f"ports.{name}.requires")
        provides = _names(raw.get("provides"), f"ports.{name}.provides")
        _check_known(requires + provides, interfaces, f"ports.{name}")
        catalog.ports[str(name)] = Port(
            name=str(name),
            requires=frozenset(requires),
            provides=frozenset(provides),
        )

    ports = set(catalog.ports)
    for name, raw in _mapping(data.get("connectors"), "connectors").items():
        raw = _mapping(raw, f"connectors.{name}")
        in_port = raw.get("in")
        out_port = raw.get("out")
        _check_known([str(p) for p in (in_port, out_port) if p is not None], ports, f"connectors.{name}")
        catalog.connectors[str(name)] = Connector(
            name=str(name),
            in_port=str(in_port) if in_port is not None else None,
            out_port=str(out_port) if out_port is not None else None,
            reliable=bool(raw.get("reliable", False)),
            local=bool(raw.get("local", False)),
        )

    return catalog


def _build_timeline(raw: Any) -> Timeline:
    try:
        if isinstance(raw, int) and not isinstance(raw, bool):
            return Timeline.of_length(raw)
        if isinstance(raw, list):
            return Timeline.from_labels([str(r) for r in raw])
    except ValueError as e:
        raise SnapshotError(f"steps: {e}") from e
    raise SnapshotError("steps: expected a step count or a list of step labels")


def _build_steps(data: dict, catalog: Catalog, timeline: Timeline, invocation_ids: set[str]) -> list[Step]:
    frames = data.get("timeline") or []
    if not isinstance(frames, list):
        raise SnapshotError("timeline: expected a list of step mappings")
    if len(frames) > len(timeline):
        raise SnapshotError(f"timeline: {len(frames)} frame(s) for {len(timeline)} step(s)")

    components = set(catalog.components)
    nodes = set(catalog.nodes)
    links = set(catalog.links)
    ports = set(catalog.ports)
    connectors = set(catalog.connectors)

    steps: list[Step] = []
    hosts: dict[str, frozenset[str]] = {}
    link_map: dict[str, frozenset[str]] = {}
    uses: dict[str, frozenset[str]] = {}
    for index in range(len(timeline)):
        frame = _mapping(frames[index], f"timeline[{index}]") if index < len(frames) else {}
        what = f"timeline[{index}]"
        # hosts, links and uses carry over when omitted; buffers do not
        if "hosts" in frame:
            hosts = _relation(frame["hosts"], keys=components, values=nodes, what=f"{what}.hosts")
        if "links" in frame:
            link_map = _relation(frame["links"], keys=links, values=nodes, what=f"{what}.links")
        if "uses" in frame:
            uses = _relation(frame["uses"], keys=components, values=ports, what=f"{what}.uses")
        buffers = _relation(frame.get("buffers"), keys=connectors, values=invocation_ids, what=f"{what}.buffers")
        steps.append(
            Step(
                index=index,
                hosts=dict(hosts),
                links=dict(link_map),
                uses=dict(uses),
                buffers={k: v for k, v in buffers.items() if v},
            )
        )
    return steps


def _step_ref(timeline: Timeline, value: Any, what: str) -> int | None:
    if value is None:
        return None
    try:
        return timeline.resolve(value)
    except ValueError as e:
        raise SnapshotError(f"{what}: {e}") from e


def _build_invocations(data: dict, catalog: Catalog, timeline: Timeline) -> dict[str, Invocation]:
    ports = set(catalog.ports)
    methods = set(catalog.methods)
    invocations: dict[str, Invocation] = {}
    for inv_id, raw in _mapping(data.get("invocations"), "invocations").items():
        inv_id = str(inv_id)
        what = f"invocations.{inv_id}"
        raw = _mapping(raw, what)
        method = raw.get("method")
        caller = raw.get("caller")
        receivers = _names(raw.get("receivers"), f"{what}.receivers")
        if method is not None:
            _check_known([str(method)], methods, f"{what}.method")
        if caller is not None:
            _check_known([str(caller)], ports, f"{what}.caller")
        _check_known(receivers, ports, f"{what}.receivers")
        invocations[inv_id] = Invocation(
            id=inv_id,
            method=str(method) if method is not None else None,
            caller=str(caller) if caller is not None else None,
            receivers=frozenset(receivers),
            invoked=_step_ref(timeline, raw.get("invoked"), f"{what}.invoked"),
            executed=_step_ref(timeline, raw.get("executed"), f"{what}.executed"),
            args=raw.get("args"),
        )
    return invocations


def history_from_dict(data: dict) -> History:
    """Build a history from already-parsed snapshot data."""
    if not isinstance(data, dict):
        raise SnapshotError("snapshot root must be a mapping")
    catalog = _build_catalog(data)
    timeline = _build_timeline(data.get("steps", len(data.get("timeline") or []) or 1))
    invocations = _build_invocations(data, catalog, timeline)
    steps = _build_steps(data, catalog, timeline, set(invocations))
    return History(catalog=catalog, timeline=timeline, steps=steps, invocations=invocations)


def load_history(path: Path) -> History:
    """Load a snapshot YAML file."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SnapshotError(f"{path}: invalid YAML: {e}") from e
    history = history_from_dict(data or {})
    logger.debug(
        "loaded %s: %d step(s), %d component(s), %d connector(s), %d invocation(s)",
        path,
        len(history.steps),
        len(history.catalog.components),
        len(history.catalog.connectors),
        len(history.invocations),
    )
    return history


def _sorted_relation(rel: dict[str, frozenset[str]]) -> dict[str, list[str]]:
    return {k: sorted(v) for k, v in sorted(rel.items())}


def history_to_dict(history: History) -> dict:
    """Inverse of history_from_dict; every frame is written out in full."""
    catalog = history.catalog
    timeline = history.timeline

    def label(index: int | None) -> str | None:
        return None if index is None else timeline.label(index)

    return {
        "steps": list(timeline.labels),
        "nodes": list(catalog.nodes),
        "links": list(catalog.links),
        "methods": list(catalog.methods),
        "interfaces": {name: sorted(i.methods) for name, i in catalog.interfaces.items()},
        "components": list(catalog.components),
        "ports": {
            name: {"requires": sorted(p.requires), "provides": sorted(p.provides)}
            for name, p in catalog.ports.items()
        },
        "connectors": {
            name: {"in": c.in_port, "out": c.out_port, "reliable": c.reliable, "local": c.local}
            for name, c in catalog.connectors.items()
        },
        "timeline": [
            {
                "hosts": _sorted_relation(step.hosts),
                "links": _sorted_relation(step.links),
                "uses": _sorted_relation(step.uses),
                "buffers": _sorted_relation(step.buffers),
            }
            for step in history.steps
        ],
        "invocations": {
            inv.id: {
                "method": inv.method,
                "caller": inv.caller,
                "receivers": sorted(inv.receivers),
                "invoked": label(inv.invoked),
                "executed": label(inv.executed),
                "args": inv.args,
            }
            for inv in sorted(history.invocations.values(), key=lambda i: i.id)
        },
    }


def dump_history(history: History, path: Path) -> None:
    path.write_text(yaml.safe_dump(history_to_dict(history), sort_keys=False), encoding="utf-8")
