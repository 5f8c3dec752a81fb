"""CLI entrypoint for dynarch."""

import logging
import sys
from pathlib import Path

import click
from rich.logging import RichHandler

from . import __version__

SNAPSHOT = click.Path(exists=True, dir_okay=False, path_type=Path)


def _enable_debug_logging() -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(show_path=False))


def _exit(fn, *args, **kwargs) -> None:
    """Run a command implementation, mapping input errors to click errors."""
    try:
        code = fn(*args, **kwargs)
    except ValueError as e:
        # SnapshotError, bad rulesets and unknown step references
        raise click.ClickException(str(e)) from e
    sys.exit(code)


@click.group()
@click.version_option(__version__, prog_name="dynarch")
@click.option("--verbose", "-V", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """dynarch - Invariant checker for dynamic component architectures.

    Validate time-indexed snapshots of nodes, components, connectors and
    invocations, and query what was invoked and executed.
    """
    if verbose:
        _enable_debug_logging()


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
@click.option(
    "--ruleset",
    "ruleset_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="TOML ruleset (defaults to rulesets/core.toml next to the snapshot)",
)
@click.option(
    "--fail-on",
    type=click.Choice(["error", "warning"]),
    default="error",
    help="Exit with error if this level or higher found",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.option(
    "--invariant",
    "invariant_filter",
    type=str,
    default=None,
    metavar="INVARIANT_ID",
    help="Only run rules for this invariant (e.g., --invariant routing)",
)
@click.option("--summary", is_flag=True, help="Print only the invariant status line")
def validate(
    snapshot: Path,
    ruleset_path: Path | None,
    fail_on: str,
    output_json: bool,
    invariant_filter: str | None,
    summary: bool,
) -> None:
    """Check every invariant across every step of a snapshot.

    All findings are collected; the exit code reflects --fail-on.
    """
    from .commands.validate import run_validate

    _exit(run_validate, snapshot, ruleset_path, fail_on, output_json, invariant_filter, summary)


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
@click.option(
    "--log",
    "log_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Append every finding to this JSON Lines event log",
)
@click.option("--fail-fast", is_flag=True, help="Stop after the first step with an error")
def monitor(snapshot: Path, log_path: Path | None, fail_fast: bool) -> None:
    """Replay a snapshot step by step through the online monitor."""
    from .commands.monitor_cmd import run_monitor

    _exit(run_monitor, snapshot, log_path, fail_fast)


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
def typecheck(snapshot: Path, output_json: bool) -> None:
    """Check that every receiver provides the method it was invoked with."""
    from .commands.query_cmd import run_typecheck

    _exit(run_typecheck, snapshot, output_json)


def _call_options(fn):
    fn = click.option("--at", required=True, help="Step index or label")(fn)
    fn = click.option("--method", required=True)(fn)
    fn = click.option("--receiver", required=True, help="Receiver port")(fn)
    fn = click.option("--caller", required=True, help="Caller port")(fn)
    return fn


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
@_call_options
def invoked(snapshot: Path, caller: str, receiver: str, method: str, at: str) -> None:
    """Was a matching call issued at step AT? Exit 0 if so."""
    from .commands.query_cmd import run_invoked

    _exit(run_invoked, snapshot, caller, receiver, method, at)


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
@_call_options
def execute(snapshot: Path, caller: str, receiver: str, method: str, at: str) -> None:
    """Was a matching call executed at step AT through a connector reaching the receiver?"""
    from .commands.query_cmd import run_execute

    _exit(run_execute, snapshot, caller, receiver, method, at)


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
@click.argument("component_a")
@click.argument("component_b")
def connectors(snapshot: Path, component_a: str, component_b: str) -> None:
    """List connectors that ever join both components (not necessarily at once)."""
    from .commands.query_cmd import run_connectors

    _exit(run_connectors, snapshot, component_a, component_b)


@cli.command()
@click.argument("snapshot", type=SNAPSHOT)
def invocations(snapshot: Path) -> None:
    """Show every invocation with its lifecycle state."""
    from .commands.query_cmd import run_invocations

    _exit(run_invocations, snapshot)


@cli.command()
@click.argument("rule_id")
def explain(rule_id: str) -> None:
    """Explain a rule and the invariant it belongs to."""
    from .commands.validate import run_explain

    sys.exit(run_explain(rule_id))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
