from __future__ import annotations

from customsfees.fees.resolver import apply_stacking_modes, resolve, sort_rules


def _labels(rules):
    return [rule.label for rule in rules]


def test_exclusive_wins_outright(make_rule, tshirt):
    rules = [
        make_rule(label="B", priority=5, stacking_mode="add", type="flat", amount=1),
        make_rule(label="A", priority=10, stacking_mode="exclusive", type="flat", amount=1),
    ]
    assert _labels(resolve(rules, tshirt, "CN", "US")) == ["A"]


def test_override_keeps_later_add_rules(make_rule, tshirt):
    rules = [
        make_rule(label="A", priority=10, stacking_mode="override", type="flat", amount=1),
        make_rule(label="B", priority=5, stacking_mode="add", type="flat", amount=1),
    ]
    assert _labels(resolve(rules, tshirt, "CN", "US")) == ["A", "B"]


def test_override_discards_higher_priority_accumulation(make_rule, tshirt):
    rules = [
        make_rule(label="high", priority=20, type="flat", amount=1),
        make_rule(label="override", priority=10, stacking_mode="override", type="flat", amount=1),
        make_rule(label="low", priority=1, type="flat", amount=1),
    ]
    assert _labels(resolve(rules, tshirt, "CN", "US")) == ["override", "low"]


def test_lower_priority_exclusive_after_override_still_wins(make_rule, tshirt):
    rules = [
        make_rule(label="override", priority=10, stacking_mode="override"),
        make_rule(label="exclusive", priority=1, stacking_mode="exclusive"),
    ]
    assert _labels(resolve(rules, tshirt, "CN", "US")) == ["exclusive"]


def test_non_matching_rules_are_filtered(make_rule, tshirt):
    rules = [
        make_rule(label="us", to_country="US"),
        make_rule(label="gb", to_country="GB", priority=50, stacking_mode="exclusive"),
    ]
    assert _labels(resolve(rules, tshirt, "CN", "US")) == ["us"]


def test_no_matches_returns_empty(make_rule, tshirt):
    assert resolve([make_rule(to_country="GB")], tshirt, "CN", "US") == []
    assert resolve([], tshirt, "CN", "US") == []


def test_priority_ties_broken_by_specificity(make_rule, tshirt):
    broad = make_rule(label="broad", match_type="hs_code", hs_code_pattern="61*", priority=5)
    exact = make_rule(label="exact", match_type="hs_code", hs_code_pattern="6109.10", priority=5)
    catch_all = make_rule(label="all", priority=5)
    assert _labels(sort_rules([catch_all, broad, exact])) == ["exact", "broad", "all"]


def test_exact_ties_keep_configured_order(make_rule):
    rules = [make_rule(label=name, priority=3, to_country="US") for name in ("first", "second", "third")]
    assert _labels(sort_rules(rules)) == ["first", "second", "third"]


def test_priority_dominates_specificity(make_rule):
    specific = make_rule(label="specific", hs_code_pattern="6109.10", category_ids=[1], priority=1)
    general = make_rule(label="general", priority=2)
    assert _labels(sort_rules([specific, general])) == ["general", "specific"]


def test_unknown_stacking_mode_treated_as_add(make_rule, caplog):
    rules = [make_rule(label="a", stacking_mode="merge"), make_rule(label="b")]
    with caplog.at_level("WARNING"):
        assert _labels(apply_stacking_modes(rules)) == ["a", "b"]
    assert "unknown stacking_mode" in caplog.text


def test_resolution_does_not_mutate_input(make_rule, tshirt):
    rules = [
        make_rule(label="low", priority=1),
        make_rule(label="high", priority=9, stacking_mode="override"),
    ]
    before = [rule.model_dump() for rule in rules]
    resolve(rules, tshirt, "CN", "US")
    assert [rule.model_dump() for rule in rules] == before
