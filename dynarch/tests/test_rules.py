"""Golden tests for the invariant rules."""

from dynarch.history.rules import ArchRules, get_rule_ids
from dynarch.history.invariants import INVARIANTS, get_invariant_for_rule


def _rules(history, rule_id):
    return ArchRules(history).run_rule(rule_id)


def test_shop_scenario_has_no_errors(shop_history):
    results = ArchRules(shop_history).run_all()
    assert [r for r in results if r.level == "error"] == []


def test_shop_scenario_completeness_warnings(shop_history):
    results = ArchRules(shop_history).run_all()
    rules = {r.rule for r in results}
    # browser has no out connector and shop no in connector; neither port
    # appears on both sides of an invocation
    assert rules == {"port-connector-binding", "port-endpoint-coverage"}
    assert all(r.level == "warning" for r in results)


def test_every_rule_maps_to_one_invariant():
    for rule_id in get_rule_ids():
        assert get_invariant_for_rule(rule_id) is not None, rule_id
    mapped = [r for inv in INVARIANTS.values() for r in inv.rules]
    assert len(mapped) == len(set(mapped))


def test_component_with_two_hosts(build, shop_data):
    shop_data["timeline"][1]["hosts"] = {"browser_app": ["client", "server"], "shop_app": ["server"]}
    results = _rules(build(shop_data), "component-hosting")
    assert [(str(r.entity), r.step) for r in results] == [("component:browser_app", 1), ("component:browser_app", 2)]
    assert all(r.level == "error" and r.invariant == "structural" for r in results)


def test_component_without_host(build, shop_data):
    del shop_data["timeline"][0]["hosts"]["shop_app"]
    results = _rules(build(shop_data), "component-hosting")
    assert {r.step for r in results} == {0, 1, 2}
    assert "no node" in results[0].message


def test_port_without_owner(build, shop_data):
    shop_data["timeline"][2]["uses"] = {"browser_app": ["browser"], "shop_app": []}
    results = _rules(build(shop_data), "port-ownership")
    assert len(results) == 1
    assert str(results[0].entity) == "port:shop"
    assert results[0].step == 2


def test_interface_without_provider(build, shop_data):
    shop_data["ports"]["shop"] = {"provides": []}
    results = _rules(build(shop_data), "interface-binding")
    assert len(results) == 1
    assert "provided by 0" in results[0].message


def test_unreachable_connection_when_link_goes_down(build, shop_data):
    shop_data["timeline"][1]["links"] = {"wire": []}
    results = _rules(build(shop_data), "unreachable-connection")
    assert [(str(r.entity), r.step) for r in results] == [("connector:http", 1), ("connector:http", 2)]
    assert "browser_app<->shop_app" in results[0].message


def test_reliable_connector_regression(build, shop_data):
    shop_data["timeline"][2]["uses"] = {"browser_app": [], "shop_app": ["shop"]}
    results = _rules(build(shop_data), "reliability-regression")
    assert len(results) == 1
    assert results[0].step == 1
    assert "browser_app" in results[0].message


def test_unmarked_connector_may_drop_components(build, shop_data):
    shop_data["connectors"]["http"]["reliable"] = False
    shop_data["timeline"][2]["uses"] = {"browser_app": [], "shop_app": ["shop"]}
    assert _rules(build(shop_data), "reliability-regression") == []


def test_local_mark_breached(build, shop_data):
    shop_data["connectors"]["http"]["local"] = True
    results = _rules(build(shop_data), "locality-breach")
    assert len(results) == 1
    assert results[0].step is None


def test_invocation_buffered_in_two_connectors_at_setup(build, shop_data):
    shop_data["connectors"]["backup"] = {"in": "browser", "out": "shop"}
    shop_data["timeline"][0]["buffers"] = {"http": ["inv-1"], "backup": ["inv-1"]}
    history = build(shop_data)

    counts = _rules(history, "setup-buffer-count")
    assert len(counts) == 1
    assert "2 connector(s)" in counts[0].message
    assert counts[0].invariant == "routing"
    # the caller port is now also bound to two connectors
    assert len(_rules(history, "setup-connector-count")) == 1


def test_setup_in_wrong_connector(build, shop_data):
    shop_data["connectors"]["other"] = {"in": None, "out": None}
    shop_data["timeline"][0]["buffers"] = {"other": ["inv-1"]}
    history = build(shop_data)
    assert len(_rules(history, "setup-misrouted")) == 1
    assert _rules(history, "setup-buffer-count") == []


def test_setup_carried_over_from_previous_step(build, shop_data):
    shop_data["invocations"]["inv-1"]["invoked"] = "t1"
    shop_data["invocations"]["inv-1"]["executed"] = "t2"
    shop_data["timeline"][2]["buffers"] = {"http": ["inv-1"]}
    history = build(shop_data)
    carried = _rules(history, "setup-carried-over")
    assert len(carried) == 1
    assert carried[0].step == 1
    # not double-reported as unissued buffering
    assert _rules(history, "buffered-while-unissued") == []


def test_never_invoked_invocation_must_not_be_buffered(build, shop_data):
    shop_data["invocations"]["inv-2"] = {"method": "buy", "caller": "browser", "receivers": ["shop"]}
    shop_data["timeline"][2]["buffers"] = {"http": ["inv-2"]}
    results = _rules(build(shop_data), "buffered-while-unissued")
    assert [(str(r.entity), r.step) for r in results] == [("invocation:inv-2", 2)]


def test_execute_before_invoke(build, shop_data):
    shop_data["invocations"]["inv-1"]["invoked"] = "t1"
    shop_data["invocations"]["inv-1"]["executed"] = "t0"
    results = _rules(build(shop_data), "execute-before-invoke")
    assert len(results) == 1


def test_execute_without_invoke(build, shop_data):
    del shop_data["invocations"]["inv-1"]["invoked"]
    history = build(shop_data)
    assert len(_rules(history, "execute-without-invoke")) == 1
    assert len(_rules(history, "buffered-while-unissued")) == 2


def test_execute_not_retired(build, shop_data):
    shop_data["timeline"][2]["buffers"] = {"http": ["inv-1"]}
    history = build(shop_data)
    results = _rules(history, "execute-not-retired")
    assert len(results) == 1
    assert results[0].step == 1
    assert _rules(history, "buffered-after-execute") == []


def test_buffered_long_after_execute(build, shop_data):
    shop_data["steps"] = 4
    shop_data["timeline"].append({"buffers": {"http": ["inv-1"]}})
    results = _rules(build(shop_data), "buffered-after-execute")
    assert [r.step for r in results] == [3]


def test_execute_with_empty_buffer(build, shop_data):
    shop_data["timeline"][1]["buffers"] = {}
    results = _rules(build(shop_data), "execute-buffer-count")
    assert len(results) == 1
    assert "0 connector(s)" in results[0].message


def test_pending_invocation_that_vanishes_is_a_warning(build, shop_data):
    del shop_data["invocations"]["inv-1"]["executed"]
    history = build(shop_data)
    results = _rules(history, "pending-unbuffered")
    assert [(r.level, r.step) for r in results] == [("warning", 2)]


def test_pending_at_final_step_is_valid(build, shop_data):
    del shop_data["invocations"]["inv-1"]["executed"]
    shop_data["timeline"][2]["buffers"] = {"http": ["inv-1"]}
    results = ArchRules(build(shop_data)).run_all()
    assert [r for r in results if r.invariant == "routing"] == []


def test_run_all_filters_by_allowed_rules(build, shop_data):
    shop_data["timeline"][1]["links"] = {"wire": []}
    results = ArchRules(build(shop_data)).run_all(allowed_rules={"unreachable-connection"})
    assert results
    assert {r.rule for r in results} == {"unreachable-connection"}


def test_back_channel_makes_the_shop_scenario_fully_clean(build, shop_data):
    # reply carries shop -> browser notifications, so every port is the in
    # port of one connector and the out port of another
    shop_data["methods"].append("notify")
    shop_data["interfaces"]["Notify"] = ["notify"]
    shop_data["ports"]["browser"] = {"requires": ["Shopping"], "provides": ["Notify"]}
    shop_data["ports"]["shop"] = {"requires": ["Notify"], "provides": ["Shopping"]}
    shop_data["connectors"]["reply"] = {"in": "shop", "out": "browser"}
    shop_data["timeline"][1]["buffers"] = {"http": ["inv-1"], "reply": ["inv-2"]}
    shop_data["timeline"][2]["buffers"] = {"reply": ["inv-2"]}
    shop_data["invocations"]["inv-2"] = {
        "method": "notify",
        "caller": "shop",
        "receivers": ["browser"],
        "invoked": "t1",
        "executed": "t2",
    }

    assert ArchRules(build(shop_data)).run_all() == []


def test_setup_counts_only_the_connector_the_call_enters_on(build, shop_data):
    shop_data["connectors"]["reply"] = {"in": "shop", "out": "browser"}
    results = ArchRules(build(shop_data)).run_all()
    assert not any(r.rule.startswith("setup-") for r in results)
    assert "port-connector-binding" not in {r.rule for r in results}
