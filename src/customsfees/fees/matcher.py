"""Rule matching for customs fee rules.

A rule applies to a product when its country gate admits the shipment's
origin/destination pair and its attribute gate (selected by ``match_type``)
admits the product's categories and/or HS code. Rules that name an unknown
``match_type`` never match.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from customsfees.countries import country_matches, normalize_country
from customsfees.fees.models import (
    MATCH_ALL,
    MATCH_CATEGORY,
    MATCH_COMBINED,
    MATCH_HS_CODE,
    FeeRuleModel,
    ProductAttributesModel,
)

logger = logging.getLogger(__name__)

WILDCARD = "*"


def split_hs_patterns(pattern: str) -> List[str]:
    """Split a comma-separated HS pattern into its non-empty sub-patterns."""

    return [part.strip() for part in pattern.split(",") if part.strip()]


def _digits_before_wildcard(pattern: str) -> int:
    head = pattern.split(WILDCARD, 1)[0]
    return sum(1 for ch in head if ch.isdigit())


def hs_code_matches_pattern(hs_code: str, pattern: str) -> bool:
    """Return True when *hs_code* satisfies a single HS sub-pattern.

    ``6109*`` matches any code starting with ``6109`` (case-insensitive);
    a plain pattern matches the identical code or any code it prefixes.
    """

    if not hs_code or not pattern:
        return False
    if WILDCARD in pattern:
        prefix = pattern.split(WILDCARD, 1)[0]
        return hs_code.upper().startswith(prefix.upper())
    return hs_code == pattern or hs_code.startswith(pattern)


def check_country_match(rule: FeeRuleModel, from_country: str, to_country: str) -> bool:
    return country_matches(rule.from_country, from_country) and country_matches(rule.to_country, to_country)


def check_category_match(rule: FeeRuleModel, product: ProductAttributesModel) -> bool:
    if not rule.category_ids:
        return True
    return not product.category_ids.isdisjoint(rule.category_ids)


def check_hs_code_match(rule: FeeRuleModel, product: ProductAttributesModel) -> bool:
    if not rule.hs_code_pattern:
        return True
    if not product.hs_code:
        # An unclassified product cannot satisfy a required pattern.
        return False
    return any(hs_code_matches_pattern(product.hs_code, part) for part in split_hs_patterns(rule.hs_code_pattern))


def matches(rule: FeeRuleModel, product: ProductAttributesModel, from_country: str, to_country: str) -> bool:
    """Decide whether *rule* applies to *product* shipped from/to the given countries."""

    if not check_country_match(rule, normalize_country(from_country), normalize_country(to_country)):
        return False

    match_type = rule.match_type
    if match_type == MATCH_ALL:
        return True
    if match_type == MATCH_CATEGORY:
        return check_category_match(rule, product)
    if match_type == MATCH_HS_CODE:
        return check_hs_code_match(rule, product)
    if match_type == MATCH_COMBINED:
        return check_category_match(rule, product) and check_hs_code_match(rule, product)

    logger.warning("Rule %s has unknown match_type %r; treating as non-matching", rule.rule_id, match_type)
    return False


def calculate_specificity(rule: FeeRuleModel) -> int:
    """Score how narrowly *rule* targets products; used to break priority ties."""

    score = 0
    pattern = rule.hs_code_pattern
    if pattern:
        if "," in pattern:
            parts = split_hs_patterns(pattern)
            score += 80 + 5 * len(parts)
            for part in parts:
                score += 10 if WILDCARD not in part else 2 * _digits_before_wildcard(part)
        elif WILDCARD not in pattern:
            score += 100
        else:
            score += 50 + 5 * _digits_before_wildcard(pattern)

    if rule.category_ids:
        score += 25
    if rule.to_country:
        score += 10
    if rule.from_country or rule.country:
        score += 5
    return score


def describe_match(rule: FeeRuleModel, category_names: Optional[Mapping[int, str]] = None) -> str:
    """Return a human readable summary of what *rule* targets."""

    parts: List[str] = []
    if rule.from_country and rule.to_country:
        parts.append(f"{rule.from_country} → {rule.to_country}")
    elif rule.from_country:
        parts.append(f"From {rule.from_country}")
    elif rule.to_country:
        parts.append(f"To {rule.to_country}")

    if rule.category_ids:
        if category_names:
            names = [category_names[cid] for cid in rule.category_ids if cid in category_names]
        else:
            names = [str(cid) for cid in rule.category_ids]
        if names:
            parts.append("Categories: " + ", ".join(names))

    if rule.hs_code_pattern:
        parts.append(f"HS Code: {rule.hs_code_pattern}")

    return " | ".join(parts) if parts else "All products"
