from __future__ import annotations

from pathlib import Path

import pytest

from dynarch.constraints.engine import run_constraints
from dynarch.constraints.load import load_core_ruleset, load_ruleset
from dynarch.constraints.schema import Predicate, RuleDef, RulesetDef, Selector
from dynarch.validation import validate


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_ruleset_builtin_and_custom_predicates(tmp_path: Path, build, shop_data) -> None:
    shop_data["timeline"][1]["links"] = {"wire": []}
    del shop_data["invocations"]["inv-1"]["executed"]
    shop_data["timeline"][2]["buffers"] = {"http": ["inv-1"]}
    history = build(shop_data)

    ruleset_path = tmp_path / "ruleset.toml"
    _write(
        ruleset_path,
        """
ruleset_id = "ruleset/test"
version = 1

[defaults]
scope = "history"

[[rules]]
id = "unreachable-connection"
invariant = "connectivity"
predicate = { name = "builtin_rule" }

[[rules]]
id = "deadline"
scope = "invocation"
severity = "warning"
selector = { kind = "by_method", method = "buy", state = "pending" }
predicate = { name = "pending_within", params = { max_steps = 1 } }
message = "Call not served in time."

[[rules]]
id = "http-local"
scope = "connector"
selector = { kind = "by_name", names = ["http"] }
predicate = { name = "connector_is_local" }
""",
    )

    ruleset = load_ruleset(ruleset_path)
    assert [r.id for r in ruleset.rules] == ["unreachable-connection", "deadline", "http-local"]

    results = run_constraints(history, ruleset=ruleset)
    by_rule = {r.rule: r for r in results}

    assert by_rule["unreachable-connection"].invariant == "connectivity"
    assert by_rule["deadline"].level == "warning"
    assert by_rule["deadline"].step == 1
    assert "Call not served in time." in by_rule["deadline"].message
    assert by_rule["http-local"].level == "error"
    assert str(by_rule["http-local"].entity) == "connector:http"


def test_pending_within_accepts_timely_execution(shop_history) -> None:
    ruleset = RulesetDef(
        ruleset_id="deadline",
        version=1,
        rules=[
            RuleDef(
                id="deadline",
                scope="invocation",
                predicate=Predicate(name="pending_within", params={"max_steps": 1}),
            )
        ],
    )
    assert run_constraints(shop_history, ruleset=ruleset) == []


def test_builtin_severity_override_and_unknown_rule(shop_history) -> None:
    ruleset = RulesetDef(
        ruleset_id="overrides",
        version=1,
        rules=[
            RuleDef(
                id="port-connector-binding",
                scope="history",
                predicate=Predicate(name="builtin_rule", params={"severity": "info"}),
            ),
            RuleDef(
                id="typo",
                scope="history",
                predicate=Predicate(name="builtin_rule", params={"rule_id": "no-such-rule"}),
            ),
            RuleDef(
                id="ignored",
                scope="history",
                predicate=Predicate(name="not_a_predicate"),
            ),
        ],
    )
    results = run_constraints(shop_history, ruleset=ruleset)

    binding = [r for r in results if r.rule == "port-connector-binding"]
    assert binding and all(r.level == "info" for r in binding)
    typo = [r for r in results if r.rule == "typo"]
    assert len(typo) == 1 and "no-such-rule" in typo[0].message
    assert not any(r.rule == "ignored" for r in results)


def test_connector_reliability_demanded_by_ruleset(build, shop_data) -> None:
    shop_data["connectors"]["http"]["reliable"] = False
    shop_data["timeline"][2]["uses"] = {"browser_app": [], "shop_app": ["shop"]}
    history = build(shop_data)
    ruleset = RulesetDef(
        ruleset_id="reliable",
        version=1,
        rules=[
            RuleDef(
                id="http-reliable",
                scope="connector",
                selector=Selector(kind="by_name", params={"names": ["http"]}),
                predicate=Predicate(name="connector_is_reliable"),
            )
        ],
    )
    results = run_constraints(history, ruleset=ruleset)
    assert [r.rule for r in results] == ["http-reliable"]


def test_receivers_provide_method_predicate(build, shop_data) -> None:
    shop_data["ports"]["shop"] = {"provides": []}
    history = build(shop_data)
    ruleset = RulesetDef(
        ruleset_id="caps",
        version=1,
        rules=[
            RuleDef(
                id="caps",
                scope="invocation",
                severity="error",
                predicate=Predicate(name="receivers_provide_method"),
            )
        ],
    )
    results = run_constraints(history, ruleset=ruleset)
    assert len(results) == 1
    assert "shop" in results[0].message


def test_core_ruleset_next_to_snapshot(tmp_path: Path, shop_path: Path) -> None:
    snapshot = tmp_path / "shop.yaml"
    snapshot.write_text(shop_path.read_text(encoding="utf-8"), encoding="utf-8")
    assert load_core_ruleset(snapshot) is None

    _write(
        tmp_path / "rulesets" / "core.toml",
        """
ruleset_id = "core"
version = 2

[[rules]]
id = "component-hosting"
predicate = { name = "builtin_rule" }
""",
    )
    ruleset = load_core_ruleset(snapshot)
    assert ruleset is not None
    assert ruleset.version == 2
    assert ruleset.rules[0].scope == "history"


def test_validate_with_ruleset_only_runs_listed_rules(shop_history) -> None:
    ruleset = RulesetDef(
        ruleset_id="hosting-only",
        version=1,
        rules=[RuleDef(id="component-hosting", scope="history", predicate=Predicate(name="builtin_rule"))],
    )
    report = validate(shop_history, ruleset=ruleset)
    assert report.passed
    assert report.violations == []
    assert report.ruleset_id == "hosting-only"


@pytest.mark.parametrize(
    "text, message",
    [
        ('version = 1\n', "ruleset_id"),
        ('ruleset_id = "x"\nversion = 0\n', "version"),
        ('ruleset_id = "x"\nversion = 1\n[[rules]]\nid = "a"\nscope = "cluster"\n', "scope"),
        ('ruleset_id = "x"\nversion = 1\n[[rules]]\nid = "a"\nseverity = "fatal"\n', "severity"),
        ('ruleset_id = "x"\nversion = 1\n[[rules]]\nid = "a"\nselector = { kind = "by_state", state = "retired" }\n', "state"),
    ],
)
def test_invalid_rulesets_rejected(tmp_path: Path, text: str, message: str) -> None:
    path = tmp_path / "bad.toml"
    _write(path, text)
    with pytest.raises(ValueError, match=message):
        load_ruleset(path)


def test_selector_filters_normalised() -> None:
    selector = Selector(kind="by_call", params={"names": ["http", " ", "reply"], "method": "buy", "state": ["Pending"]})
    assert selector.connectors == frozenset({"http", "reply"})
    assert selector.methods == frozenset({"buy"})
    assert selector.states == frozenset({"pending"})
    assert Selector(kind="all").connectors == frozenset()


def test_invocation_state_selector_skips_completed_calls(build, shop_data) -> None:
    shop_data["steps"] = 4
    shop_data["timeline"].append({})
    history = build(shop_data)
    rule = RuleDef(
        id="deadline",
        scope="invocation",
        selector=Selector(kind="by_state", params={"state": "pending"}),
        predicate=Predicate(name="pending_within", params={"max_steps": 0}),
    )
    # inv-1 took one step, but it is completed and not selected
    assert run_constraints(history, ruleset=RulesetDef(ruleset_id="late", version=1, rules=[rule])) == []
