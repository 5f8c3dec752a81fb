"""Validate command implementation."""

import json
from collections import defaultdict
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..constraints import load_core_ruleset, load_ruleset
from ..constraints.load import core_ruleset_path
from ..history.invariants import INVARIANTS, INVARIANT_ORDER, get_invariant_for_rule
from ..history.loader import load_history
from ..history.model import History
from ..history.rules import RULE_EXPLANATIONS, Violation
from ..validation import ValidationReport, validate


def run_validate(
    snapshot_path: Path,
    ruleset_path: Path | None = None,
    fail_on: str = "error",
    output_json: bool = False,
    invariant_filter: str | None = None,
    summary: bool = False,
) -> int:
    """Validate a snapshot file.

    Args:
        snapshot_path: Path to the snapshot YAML file
        ruleset_path: Optional TOML ruleset (defaults to rulesets/core.toml next to the snapshot)
        fail_on: Exit with error if this level or higher found ("error" or "warning")
        output_json: Output results as JSON instead of human-readable
        invariant_filter: Only run rules for this invariant (e.g., 'routing')
        summary: Print only the invariant status line

    Returns:
        Exit code (0 = success, 1 = failures found)
    """
    console = Console(stderr=True)

    console.print(f"Loading snapshot from {snapshot_path}...", style="dim")
    history = load_history(snapshot_path)

    if invariant_filter and invariant_filter not in INVARIANTS:
        console.print(f"Unknown invariant: {invariant_filter}", style="bold red")
        console.print(f"Available: {', '.join(INVARIANT_ORDER)}", style="dim")
        return 1

    if ruleset_path is not None:
        ruleset = load_ruleset(ruleset_path)
    else:
        ruleset = load_core_ruleset(snapshot_path)
        ruleset_path = core_ruleset_path(snapshot_path) if ruleset else None
    if ruleset is not None:
        console.print(f"Using ruleset {ruleset.ruleset_id} v{ruleset.version} ({ruleset_path})", style="dim")

    report = validate(history, ruleset=ruleset, invariant_filter=invariant_filter)

    if output_json:
        _output_json(report, history)
    elif summary:
        _print_summary_output(console, report.violations)
    else:
        _print_grouped_output(console, report, history)

    return 1 if report.fails_on(fail_on) else 0


def _output_json(report: ValidationReport, history: History) -> None:
    counts = report.counts
    output = {
        "passed": report.passed,
        "ruleset": report.ruleset_id,
        "violations": [v.to_dict() for v in report.violations],
        "summary": {
            "steps": len(history.steps),
            "components": len(history.catalog.components),
            "connectors": len(history.catalog.connectors),
            "invocations": len(history.invocations),
            "errors": counts["error"],
            "warnings": counts["warning"],
            "info": counts["info"],
        },
    }
    print(json.dumps(output, indent=2, default=str))


def _level_style(level: str) -> tuple[str, str]:
    if level == "error":
        return "ERROR", "bold red"
    if level == "warning":
        return "WARN", "yellow"
    return "INFO", "dim"


def _status(results: list[Violation]) -> tuple[str, str]:
    errors = sum(1 for r in results if r.level == "error")
    warnings = sum(1 for r in results if r.level == "warning")
    if errors:
        return f"✗ ({errors}e)", "bold red"
    if warnings:
        return f"⚠ ({warnings}w)", "yellow"
    return "✓", "bold green"


def _print_grouped_output(console: Console, report: ValidationReport, history: History) -> None:
    by_invariant: dict[str, list[Violation]] = defaultdict(list)
    unclassified: list[Violation] = []
    for v in report.violations:
        if v.invariant in INVARIANTS:
            by_invariant[v.invariant].append(v)
        else:
            unclassified.append(v)

    for inv_id in INVARIANT_ORDER:
        inv = INVARIANTS[inv_id]
        results = by_invariant.get(inv_id, [])
        status, style = _status(results)
        console.print()
        console.print(f"{status} {inv.name}", style=style)
        if not results:
            console.print("  ✓ All rules passing", style="dim green")
            continue
        by_rule: dict[str, list[Violation]] = defaultdict(list)
        for r in results:
            by_rule[r.rule].append(r)
        for rule_id, rule_results in sorted(by_rule.items()):
            console.print(f"\n  Rule: {rule_id}", style="bold")
            for r in rule_results:
                prefix, prefix_style = _level_style(r.level)
                target = str(r.entity) if r.entity else "history"
                if r.step is not None:
                    target += f" @ {history.timeline.label(r.step)}"
                console.print(f"    {prefix}: {target} - {r.message}", style=prefix_style)

    if unclassified:
        console.print()
        console.print("Ruleset findings", style="bold")
        for r in unclassified:
            prefix, prefix_style = _level_style(r.level)
            target = str(r.entity) if r.entity else "history"
            console.print(f"  {prefix}: [{r.rule}] {target} - {r.message}", style=prefix_style)

    console.print()
    table = Table(title="Snapshot Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Steps", str(len(history.steps)))
    table.add_row("Nodes", str(len(history.catalog.nodes)))
    table.add_row("Components", str(len(history.catalog.components)))
    table.add_row("Ports", str(len(history.catalog.ports)))
    table.add_row("Connectors", str(len(history.catalog.connectors)))
    table.add_row("Invocations", str(len(history.invocations)))
    console.print(table)

    counts = report.counts
    console.print()
    if counts["error"]:
        console.print(f"❌ {counts['error']} error(s)", style="bold red")
    if counts["warning"]:
        console.print(f"⚠️  {counts['warning']} warning(s)", style="yellow")
    if report.passed and not counts["warning"]:
        console.print("✅ No errors or warnings", style="bold green")


def _print_summary_output(console: Console, results: list[Violation]) -> None:
    """Print compact invariant status line."""
    by_invariant: dict[str, list[Violation]] = defaultdict(list)
    for r in results:
        if r.invariant:
            by_invariant[r.invariant].append(r)
    for inv_id in INVARIANT_ORDER:
        status, style = _status(by_invariant.get(inv_id, []))
        console.print(f"{INVARIANTS[inv_id].name}: {status}", style=style, end="  ")
    console.print()


def run_explain(rule_id: str) -> int:
    """Print documentation for a rule."""
    console = Console()
    text = RULE_EXPLANATIONS.get(rule_id)
    if text is None:
        console.print(f"Unknown rule: {rule_id}", style="bold red")
        console.print(f"Available: {', '.join(RULE_EXPLANATIONS)}", style="dim")
        return 1
    inv = get_invariant_for_rule(rule_id)
    console.print(f"[bold]{rule_id}[/bold]")
    console.print(f"  {text}")
    if inv:
        console.print(f"  Invariant: {inv.name} - {inv.statement}", style="dim")
        console.print(f"  Failure mode: {inv.failure_mode}", style="dim")
    return 0
