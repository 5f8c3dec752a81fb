"""
Invocation lifecycle: derived states and the connector-buffer writer.

An invocation moves UNISSUED -> PENDING when its `invoked` step is set and
PENDING -> COMPLETED when its `executed` step is set. There is no
cancellation; a never-executed invocation stays PENDING.

`LifecycleEngine` is the only code that writes connector buffers. It follows
the Setup rule (first enqueue in the caller's single connector) and the
Execute rule (retire from the single buffering connector).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum

from .history.fabric import buffering_connectors, caller_connectors
from .history.model import History, Step
from .models import Invocation

logger = logging.getLogger(__name__)


class InvocationState(str, Enum):
    UNISSUED = "unissued"
    PENDING = "pending"
    COMPLETED = "completed"


class RoutingError(ValueError):
    """The writer cannot perform the requested transition."""


def state_of(inv: Invocation) -> InvocationState:
    """State implied by the timestamps alone."""
    if inv.invoked is None:
        return InvocationState.UNISSUED
    if inv.executed is None:
        return InvocationState.PENDING
    return InvocationState.COMPLETED


def state_at(inv: Invocation, index: int) -> InvocationState:
    """State as observed at a given step."""
    if inv.invoked is None or index < inv.invoked:
        return InvocationState.UNISSUED
    if inv.executed is not None and index >= inv.executed:
        return InvocationState.COMPLETED
    return InvocationState.PENDING


def _with_buffer(step: Step, connector: str, ids: frozenset[str]) -> Step:
    buffers = dict(step.buffers)
    if ids:
        buffers[connector] = ids
    else:
        buffers.pop(connector, None)
    return replace(step, buffers=buffers)


class LifecycleEngine:
    """Applies Setup and Execute transitions to a history."""

    def __init__(self, history: History):
        self.history = history

    def _get(self, invocation_id: str) -> Invocation:
        inv = self.history.invocations.get(invocation_id)
        if inv is None:
            raise RoutingError(f"unknown invocation: {invocation_id}")
        return inv

    def setup(self, invocation_id: str) -> str:
        """Enqueue a freshly invoked invocation; returns the connector used."""
        inv = self._get(invocation_id)
        if inv.invoked is None:
            raise RoutingError(f"{inv.id} has no invoked step")
        if inv.caller is None:
            raise RoutingError(f"{inv.id} has no caller port")

        t = inv.invoked
        step = self.history.step(t)
        candidates = caller_connectors(self.history.catalog, step, inv.caller)
        if len(candidates) != 1:
            raise RoutingError(
                f"caller port {inv.caller!r} is the in port of {len(candidates)} connector(s) at step {t}, expected exactly one"
            )
        connector = candidates[0]

        prev = self.history.prev_step(t)
        if prev is not None and inv.id in prev.buffer(connector):
            raise RoutingError(f"{inv.id} is already buffered in {connector!r} before step {t}")

        last = inv.executed if inv.executed is not None else self.history.timeline.last
        for index in range(t, last + 1):
            s = self.history.step(index)
            self.history.replace_step(_with_buffer(s, connector, s.buffer(connector) | {inv.id}))

        logger.debug("setup %s via %s at step %d", inv.id, connector, t)
        return connector

    def execute(self, invocation_id: str, at: int | str, connector: str | None = None) -> Invocation:
        """Retire a pending invocation at step `at`; returns the completed record."""
        inv = self._get(invocation_id)
        at = self.history.timeline.resolve(at)
        if inv.invoked is None:
            raise RoutingError(f"{inv.id} was never invoked")
        if inv.executed is not None:
            raise RoutingError(f"{inv.id} was already executed at step {inv.executed}")
        if at < inv.invoked:
            raise RoutingError(f"{inv.id} cannot execute at step {at}, before it was invoked at {inv.invoked}")

        step = self.history.step(at)
        holders = buffering_connectors(step, inv.id)
        if connector is not None:
            if connector not in holders:
                raise RoutingError(f"{inv.id} is not buffered in {connector!r} at step {at}")
            others = [h for h in holders if h != connector]
            if others:
                raise RoutingError(f"{inv.id} is also buffered in {', '.join(others)} at step {at}")
        elif len(holders) != 1:
            raise RoutingError(
                f"{inv.id} is buffered by {len(holders)} connector(s) at step {at}, expected exactly one"
            )
        retiring = connector or holders[0]

        for index in range(at + 1, len(self.history.steps)):
            s = self.history.step(index)
            if inv.id in s.buffer(retiring):
                self.history.replace_step(_with_buffer(s, retiring, s.buffer(retiring) - {inv.id}))

        completed = replace(inv, executed=at)
        self.history.invocations[inv.id] = completed
        logger.debug("execute %s via %s at step %d", inv.id, retiring, at)
        return completed
