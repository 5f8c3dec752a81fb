"""Query commands: invoked, execute, typecheck, connectors, invocations."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..history.fabric import get_connectors
from ..history.loader import load_history
from ..lifecycle import state_of
from ..query import StructuralViolationError, execute, invoked, type_checking


def _report_unsound(console: Console, e: StructuralViolationError) -> int:
    console.print("✗ Snapshot is structurally unsound; queries are not answered.", style="bold red")
    for v in e.violations:
        console.print(f"  {v}", style="red")
    return 2


def run_invoked(snapshot_path: Path, caller: str, receiver: str, method: str, at: str) -> int:
    console = Console()
    history = load_history(snapshot_path)
    step = history.timeline.resolve(at)
    try:
        answer = invoked(history, caller, receiver, method, None, step)
    except StructuralViolationError as e:
        return _report_unsound(Console(stderr=True), e)
    console.print(f"Invoked({caller}, {receiver}, {method}, {history.timeline.label(step)}) = {answer}")
    return 0 if answer else 1


def run_execute(snapshot_path: Path, caller: str, receiver: str, method: str, at: str) -> int:
    console = Console()
    history = load_history(snapshot_path)
    step = history.timeline.resolve(at)
    try:
        answer = execute(history, caller, receiver, method, None, step)
    except StructuralViolationError as e:
        return _report_unsound(Console(stderr=True), e)
    console.print(f"Execute({caller}, {receiver}, {method}, {history.timeline.label(step)}) = {answer}")
    return 0 if answer else 1


def run_typecheck(snapshot_path: Path, output_json: bool = False) -> int:
    console = Console(stderr=True)
    history = load_history(snapshot_path)
    try:
        findings = type_checking(history)
    except StructuralViolationError as e:
        return _report_unsound(console, e)

    if output_json:
        print(json.dumps({"passed": not findings, "violations": [f.to_dict() for f in findings]}, indent=2))
    elif findings:
        for f in findings:
            console.print(f"WARN: {f.entity} - {f.message}", style="yellow")
        console.print(f"\n⚠️  {len(findings)} capability violation(s)", style="yellow")
    else:
        console.print("✅ Every receiver provides its invoked method", style="bold green")
    return 1 if findings else 0


def run_connectors(snapshot_path: Path, c1: str, c2: str) -> int:
    console = Console()
    history = load_history(snapshot_path)
    found = get_connectors(history, c1, c2)
    if not found:
        console.print(f"No connector ever joins both {c1} and {c2}", style="dim")
        return 1
    for name in found:
        console.print(name)
    return 0


def run_invocations(snapshot_path: Path) -> int:
    console = Console()
    history = load_history(snapshot_path)
    timeline = history.timeline

    table = Table(title="Invocations")
    table.add_column("Id", style="cyan")
    table.add_column("Method")
    table.add_column("Caller")
    table.add_column("Receivers")
    table.add_column("Invoked")
    table.add_column("Executed")
    table.add_column("State")

    for inv in sorted(history.invocations.values(), key=lambda i: i.id):
        table.add_row(
            inv.id,
            inv.method or "-",
            inv.caller or "-",
            ", ".join(sorted(inv.receivers)) or "-",
            timeline.label(inv.invoked) if inv.invoked is not None else "-",
            timeline.label(inv.executed) if inv.executed is not None else "-",
            state_of(inv).value,
        )
    console.print(table)
    return 0
