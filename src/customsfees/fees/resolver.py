"""Resolve the set of rules that applies to one product in one shipment."""

from __future__ import annotations

import logging
from typing import Iterable, List

from customsfees.fees.matcher import calculate_specificity, matches
from customsfees.fees.models import (
    STACK_ADD,
    STACK_EXCLUSIVE,
    STACK_OVERRIDE,
    FeeRuleModel,
    ProductAttributesModel,
)

logger = logging.getLogger(__name__)


def sort_rules(rules: Iterable[FeeRuleModel]) -> List[FeeRuleModel]:
    """Order rules by descending priority, then descending specificity.

    The sort is stable, so exact ties keep their configured order.
    """

    return sorted(rules, key=lambda rule: (-rule.priority, -calculate_specificity(rule)))


def apply_stacking_modes(rules: Iterable[FeeRuleModel]) -> List[FeeRuleModel]:
    """Apply stacking semantics to rules already in evaluation order.

    ``exclusive`` returns that rule alone. ``override`` discards everything
    accumulated so far but keeps evaluating, so later ``add`` rules are
    still appended after it. ``add`` accumulates.
    """

    final: List[FeeRuleModel] = []
    for rule in rules:
        mode = rule.stacking_mode
        if mode == STACK_EXCLUSIVE:
            return [rule]
        if mode == STACK_OVERRIDE:
            final = [rule]
            continue
        if mode != STACK_ADD:
            logger.warning("Rule %s has unknown stacking_mode %r; treating as %s", rule.rule_id, mode, STACK_ADD)
        final.append(rule)
    return final


def resolve(
    all_rules: Iterable[FeeRuleModel],
    product: ProductAttributesModel,
    from_country: str,
    to_country: str,
) -> List[FeeRuleModel]:
    """Return the rules that apply to *product*, ordered and stacking-resolved."""

    matching = [rule for rule in all_rules if matches(rule, product, from_country, to_country)]
    if not matching:
        return []
    return apply_stacking_modes(sort_rules(matching))
