"""Topology and connector fabric queries."""

from dynarch.history.fabric import (
    buffering_connectors,
    connects,
    get_connectors,
    is_local,
    is_reliable,
    caller_connectors,
)
from dynarch.history.model import Step
from dynarch.history.topology import host_of, linked, reachable


def test_host_of_requires_exactly_one_node():
    step = Step(index=0, hosts={"a": frozenset({"n1"}), "b": frozenset({"n1", "n2"})})
    assert host_of(step, "a") == "n1"
    assert host_of(step, "b") is None
    assert host_of(step, "missing") is None


def test_reachable_via_colocation_or_shared_link():
    step = Step(
        index=0,
        hosts={"a": frozenset({"n1"}), "b": frozenset({"n1"}), "c": frozenset({"n2"}), "d": frozenset({"n3"})},
        links={"l1": frozenset({"n1", "n2"})},
    )
    assert linked(step, "n1", "n2")
    assert not linked(step, "n1", "n3")
    assert reachable(step, "a", "b")
    assert reachable(step, "a", "c")
    assert not reachable(step, "a", "d")


def test_connects_is_union_of_port_users(shop_history):
    step = shop_history.step(0)
    assert connects(shop_history.catalog, step, "http") == frozenset({"browser_app", "shop_app"})
    assert caller_connectors(shop_history.catalog, step, "browser") == ["http"]
    assert buffering_connectors(step, "inv-1") == ["http"]


def test_caller_connectors_empty_when_port_unused(build, shop_data):
    shop_data["timeline"][1]["uses"] = {"browser_app": [], "shop_app": ["shop"]}
    history = build(shop_data)
    assert caller_connectors(history.catalog, history.step(1), "browser") == []


def test_shop_connector_is_reliable_but_not_local(shop_history):
    assert is_reliable(shop_history, "http")
    assert not is_local(shop_history, "http")


def test_connector_dropping_a_component_is_unreliable(build, shop_data):
    shop_data["timeline"][2]["uses"] = {"browser_app": ["browser"], "shop_app": []}
    history = build(shop_data)
    assert not is_reliable(history, "http")


def test_colocated_connector_is_local(build, shop_data):
    shop_data["timeline"][0]["hosts"]["shop_app"] = ["client"]
    history = build(shop_data)
    assert is_local(history, "http")


def test_get_connectors_does_not_require_simultaneity(build, shop_data):
    shop_data["components"].append("mirror_app")
    shop_data["timeline"][0]["hosts"]["mirror_app"] = ["server"]
    # shop port moves from shop_app to mirror_app at t1: shop_app and
    # mirror_app are never joined at the same step
    shop_data["timeline"][1]["uses"] = {"browser_app": ["browser"], "shop_app": [], "mirror_app": ["shop"]}
    history = build(shop_data)

    assert get_connectors(history, "shop_app", "mirror_app") == ["http"]
    assert get_connectors(history, "browser_app", "shop_app") == ["http"]
    assert get_connectors(history, "shop_app", "nobody") == []


def test_caller_connectors_ignore_the_out_side(build, shop_data):
    shop_data["connectors"]["reply"] = {"in": "shop", "out": "browser"}
    history = build(shop_data)
    step = history.step(0)
    assert caller_connectors(history.catalog, step, "browser") == ["http"]
    assert caller_connectors(history.catalog, step, "shop") == ["reply"]
    # both connectors still join the two components
    assert connects(history.catalog, step, "reply") == frozenset({"browser_app", "shop_app"})
