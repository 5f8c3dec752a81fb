from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from .schema import Predicate, RuleDef, RulesetDef, Selector

_SCOPES = {"history", "connector", "invocation"}
_SEVERITIES = {"error", "warning", "info"}
_STATES = {"unissued", "pending", "completed"}


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def ruleset_from_dict(data: dict[str, Any]) -> RulesetDef:
    """Build a ruleset from parsed TOML data."""
    ruleset_id = str(data.get("ruleset_id", "")).strip()
    if not ruleset_id:
        raise ValueError("ruleset_id is required")

    version = int(data.get("version", 0))
    if version <= 0:
        raise ValueError("version must be a positive integer")

    defaults = _coerce_dict(data.get("defaults"))
    default_scope = str(defaults.get("scope", "history")).strip() or "history"
    default_severity = str(defaults.get("severity", "error")).strip() or "error"

    rules: list[RuleDef] = []
    for raw in data.get("rules", []):
        if not isinstance(raw, dict):
            continue

        rule_id = str(raw.get("id", "")).strip()
        if not rule_id:
            continue

        scope = str(raw.get("scope", default_scope)).strip() or default_scope
        if scope not in _SCOPES:
            raise ValueError(f"rule {rule_id}: unknown scope {scope!r}")
        severity = str(raw.get("severity", default_severity)).strip() or default_severity
        if severity not in _SEVERITIES:
            raise ValueError(f"rule {rule_id}: unknown severity {severity!r}")

        selector_raw = _coerce_dict(raw.get("selector"))
        selector_kind = str(selector_raw.get("kind", "all")).strip() or "all"
        selector_params = {k: v for k, v in selector_raw.items() if k != "kind"}
        selector = Selector(kind=selector_kind, params=selector_params)
        unknown_states = selector.states - _STATES
        if unknown_states:
            raise ValueError(f"rule {rule_id}: unknown state(s) {', '.join(sorted(unknown_states))}")

        pred_raw = _coerce_dict(raw.get("predicate"))
        pred_name = str(pred_raw.get("name", "noop")).strip() or "noop"
        pred_params = _coerce_dict(pred_raw.get("params"))

        rules.append(
            RuleDef(
                id=rule_id,
                scope=scope,  # type: ignore[arg-type]
                severity=severity,  # type: ignore[arg-type]
                invariant=_optional_str(raw.get("invariant")),
                selector=selector,
                predicate=Predicate(name=pred_name, params=pred_params),
                message=raw.get("message") if isinstance(raw.get("message"), str) else None,
                rationale=raw.get("rationale") if isinstance(raw.get("rationale"), str) else None,
            )
        )

    return RulesetDef(
        ruleset_id=ruleset_id,
        version=version,
        description=_optional_str(data.get("description")),
        rules=rules,
    )


def load_ruleset(path: Path) -> RulesetDef:
    """
    Load a ruleset from TOML.

    The schema is intentionally small: rules are data, evaluation is code.
    """
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    return ruleset_from_dict(data)


def core_ruleset_path(snapshot_path: Path) -> Path:
    return snapshot_path.parent / "rulesets" / "core.toml"


def load_core_ruleset(snapshot_path: Path) -> RulesetDef | None:
    """Load the ruleset shipped next to a snapshot file, if present."""
    ruleset_path = core_ruleset_path(snapshot_path)
    if not ruleset_path.exists():
        return None
    return load_ruleset(ruleset_path)
