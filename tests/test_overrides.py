import pytest

from buildgraph.dag import TaskGraph, TaskRegistry, TaskRule
from buildgraph.overrides import (
    ExecutionGraphHook,
    GraphFinalizer,
    OverrideRule,
    rules_from_config,
    rules_from_patterns,
)
from buildgraph.predicates import CaseInsensitiveSubstring, Exact, Substring


def _enabled_map(tasks):
    return {t.name: t.enabled for t in tasks}


@pytest.fixture
def registry():
    reg = TaskRegistry()
    for name in ["a", "b-strip", "c", "StripNative", "extractNativeSymbolTables"]:
        reg.register(name)
    return reg


def test_unknown_effect_rejected():
    with pytest.raises(ValueError, match="Unknown override effect"):
        OverrideRule(Exact("a"), effect="enable")


def test_rules_from_patterns_are_case_insensitive():
    rules = rules_from_patterns(["strip", "Lint"])
    assert [r.predicate for r in rules] == [
        CaseInsensitiveSubstring("strip"),
        CaseInsensitiveSubstring("Lint"),
    ]


def test_rules_from_config_mixed():
    rules = rules_from_config(["strip", {"exact": "c"}, {"contains": "Native"}])
    assert [r.predicate for r in rules] == [
        CaseInsensitiveSubstring("strip"),
        Exact("c"),
        Substring("Native"),
    ]


def test_finalizer_disables_matches(registry):
    disabled = GraphFinalizer().apply(rules_from_patterns(["strip"]), registry)
    assert [t.name for t in disabled] == ["b-strip", "StripNative"]
    assert _enabled_map(registry) == {
        "a": True,
        "b-strip": False,
        "c": True,
        "StripNative": False,
        "extractNativeSymbolTables": True,
    }


def test_finalizer_is_idempotent(registry):
    rules = rules_from_patterns(["strip", "extractNativeSymbol"])
    finalizer = GraphFinalizer()
    finalizer.apply(rules, registry)
    once = _enabled_map(registry)
    assert finalizer.apply(rules, registry) == []
    assert _enabled_map(registry) == once


def test_overlapping_rules_disable_once(registry):
    rules = rules_from_patterns(["strip", "STRIP", "b-"])
    disabled = GraphFinalizer().apply(rules, registry)
    assert [t.name for t in disabled] == ["b-strip", "StripNative"]


def test_finalizer_keeps_edges():
    reg = TaskRegistry()
    reg.register("strip", ["a"])
    reg.register("a")
    GraphFinalizer().apply(rules_from_patterns(["strip"]), reg)
    assert reg.get("strip").dependencies == ["a"]


def test_hook_catches_injected_tasks():
    reg = TaskRegistry()
    reg.add_rule(TaskRule("clean", lambda name: {}))
    reg.register("bundle", ["cleanStripCache"])
    rules = rules_from_patterns(["strip"])

    assert GraphFinalizer().apply(rules, reg) == []
    ordered = TaskGraph(reg).execution_order()
    disabled = ExecutionGraphHook().apply(rules, ordered)

    assert [t.name for t in disabled] == ["cleanStripCache"]
    assert _enabled_map(ordered) == {"cleanStripCache": False, "bundle": True}


@pytest.mark.parametrize(
    "order",
    [
        ["a", "strip-1", "b"],
        ["strip-1", "b", "a"],
        ["b", "a", "strip-1"],
    ],
)
def test_every_match_disabled_regardless_of_registration_order(order):
    reg = TaskRegistry()
    for name in order:
        reg.register(name)
    rules = rules_from_patterns(["STRIP"])
    GraphFinalizer().apply(rules, reg)
    ExecutionGraphHook().apply(rules, TaskGraph(reg).execution_order())
    assert [t.name for t in reg if not t.enabled] == ["strip-1"]
