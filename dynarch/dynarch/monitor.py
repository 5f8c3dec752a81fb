"""
Online monitoring of a step stream.

The monitor validates each arriving step against the rules touching that step
and its predecessor, then drops everything but that step. Findings are
returned and passed to `on_violation`; the stream is never halted, so the
caller decides when to stop.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from .history.fabric import pair_nodes
from .history.model import Catalog, Step
from .history.rules import (
    Violation,
    check_buffer_window,
    check_carry_over,
    check_component_hosting,
    check_execute,
    check_port_ownership,
    check_reliability,
    check_retirement,
    check_setup,
    check_unknown_buffered,
    check_unreachable_connections,
)
from .models import EntityKind, EntityRef, Invocation

logger = logging.getLogger(__name__)


class OnlineMonitor:
    """Incremental validator with a one-step lookback window."""

    def __init__(
        self,
        catalog: Catalog,
        invocations: Iterable[Invocation] = (),
        on_violation: Callable[[Violation], None] | None = None,
    ):
        self.catalog = catalog
        self.on_violation = on_violation
        self._invocations: dict[str, Invocation] = {}
        self._retired: set[str] = set()
        self._prev: Step | None = None
        self._local_nodes: dict[str, set[str | None]] = {
            name: set() for name, conn in catalog.connectors.items() if conn.local
        }
        self._closed = False
        self.steps_seen = 0
        for inv in invocations:
            self.register(inv)

    def register(self, inv: Invocation) -> None:
        """Add or update an invocation record; must arrive before its steps do."""
        if self._prev is not None and inv.invoked is not None and inv.invoked <= self._prev.index:
            logger.warning(
                "invocation %s registered after its invoked step %d was fed; setup is not checked",
                inv.id,
                inv.invoked,
            )
        self._invocations[inv.id] = inv
        self._retired.discard(inv.id)

    @property
    def pending(self) -> list[str]:
        """Ids still in the active scan set."""
        return sorted(i for i in self._invocations if i not in self._retired)

    def _emit(self, results: list[Violation]) -> list[Violation]:
        for v in results:
            logger.info("%s", v)
            if self.on_violation is not None:
                self.on_violation(v)
        return results

    def feed(self, step: Step) -> list[Violation]:
        """Validate one newly arrived step."""
        if self._closed:
            raise RuntimeError("monitor already finished")
        expected = 0 if self._prev is None else self._prev.index + 1
        if step.index != expected:
            raise ValueError(f"expected step {expected}, got {step.index}")

        prev = self._prev
        results: list[Violation] = []
        results.extend(check_component_hosting(self.catalog, step))
        results.extend(check_port_ownership(self.catalog, step))
        results.extend(check_unreachable_connections(self.catalog, step))
        results.extend(check_unknown_buffered(step, self._invocations))
        if prev is not None:
            results.extend(check_reliability(self.catalog, prev, step))

        for inv_id in self.pending:
            inv = self._invocations[inv_id]
            results.extend(check_buffer_window(inv, step))
            if inv.invoked == step.index:
                results.extend(check_setup(self.catalog, inv, step))
                if prev is not None:
                    results.extend(check_carry_over(inv, prev, step))
            if inv.executed == step.index:
                results.extend(check_execute(inv, step))
            if prev is not None and inv.executed == prev.index:
                results.extend(check_retirement(inv, prev, step))

        buffered = set().union(*step.buffers.values()) if step.buffers else set()
        for inv_id in sorted(buffered & self._retired):
            results.extend(check_buffer_window(self._invocations[inv_id], step))

        for name, nodes in self._local_nodes.items():
            nodes |= pair_nodes(self.catalog, step, name)

        self._prune(step.index)
        self._prev = step
        self.steps_seen += 1
        return self._emit(results)

    def _prune(self, index: int) -> None:
        for inv_id in self.pending:
            inv = self._invocations[inv_id]
            if inv.executed is not None and index > inv.executed:
                self._retired.add(inv_id)

    def finish(self) -> list[Violation]:
        """Close the stream and report whole-run obligations."""
        if self._closed:
            return []
        self._closed = True
        results = []
        for name, nodes in sorted(self._local_nodes.items()):
            if None in nodes or len(nodes) > 1:
                results.append(
                    Violation(
                        level="error",
                        rule="locality-breach",
                        message="Local connector joins components on more than one node",
                        entity=EntityRef(EntityKind.CONNECTOR, name),
                    )
                )
        return self._emit(results)
