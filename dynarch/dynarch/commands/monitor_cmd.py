"""Monitor command - replay a snapshot as a step stream."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from ..events import ViolationEvent, format_event, log_event
from ..history.loader import load_history
from ..history.rules import Violation
from ..monitor import OnlineMonitor


def run_monitor(snapshot_path: Path, log_path: Path | None = None, fail_fast: bool = False) -> int:
    """
    Feed every step of a snapshot through the online monitor.

    Each finding is printed as it is detected and, with a log path, appended
    to the JSON Lines event log. With `fail_fast` the replay stops after the
    first step that produced an error.
    """
    console = Console(stderr=True)
    history = load_history(snapshot_path)
    timeline = history.timeline

    event_count = 0

    def on_violation(v: Violation) -> None:
        nonlocal event_count
        event_count += 1
        if log_path is not None:
            envelope = log_event(log_path, v, metadata={"snapshot": str(snapshot_path)})
        else:
            envelope = ViolationEvent(timestamp="", violation=v)
        style = "bold red" if v.level == "error" else "yellow"
        console.print(format_event(envelope), style=style, markup=False)

    monitor = OnlineMonitor(history.catalog, history.invocations.values(), on_violation=on_violation)

    errors = 0
    for step in history.steps:
        console.print(f"[dim]step {timeline.label(step.index)}[/dim]")
        found = monitor.feed(step)
        errors += sum(1 for v in found if v.level == "error")
        if fail_fast and errors:
            console.print("Stopping at first failing step (--fail-fast)", style="bold red")
            return 1
    errors += sum(1 for v in monitor.finish() if v.level == "error")

    console.print()
    console.print(f"{monitor.steps_seen} step(s) monitored, {event_count} event(s)", style="dim")
    if log_path is not None:
        console.print(f"Events appended to {log_path}", style="dim")
    return 1 if errors else 0
