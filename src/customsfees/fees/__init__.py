"""Customs fee rules engine.

Rule Matcher -> Rule Resolver -> Fee Calculator, plus the rule store,
product lookup and cart collaborators they are evaluated against.
"""
from .calculator import (
    GENERIC_FEE_LABEL,
    aggregate_fee_lines,
    calculate,
    calculate_rule_fee,
    compute_cart_fees,
    evaluate_test_fee,
)
from .cart import CartContext, CartPayloadModel, CustomsFeeService, StaticCartContext
from .fee_types import DEFAULT_FEE_TYPES, FeeTypeCalculator, FeeTypeRegistry, normalize_rate
from .matcher import calculate_specificity, describe_match, matches
from .models import (
    FeeLine,
    FeeRuleModel,
    FeeTierModel,
    LineItemModel,
    ProductAttributesModel,
    ShipmentContextModel,
    coerce_rules,
    migrate_legacy_rule,
)
from .products import InMemoryProductCatalog, ProductLookup, ProductRecordModel
from .resolver import resolve
from .rule_store import RuleStore, RuleStoreError

__all__ = [
    "GENERIC_FEE_LABEL",
    "aggregate_fee_lines",
    "calculate",
    "calculate_rule_fee",
    "compute_cart_fees",
    "evaluate_test_fee",
    "CartContext",
    "CartPayloadModel",
    "CustomsFeeService",
    "StaticCartContext",
    "DEFAULT_FEE_TYPES",
    "FeeTypeCalculator",
    "FeeTypeRegistry",
    "normalize_rate",
    "calculate_specificity",
    "describe_match",
    "matches",
    "FeeLine",
    "FeeRuleModel",
    "FeeTierModel",
    "LineItemModel",
    "ProductAttributesModel",
    "ShipmentContextModel",
    "coerce_rules",
    "migrate_legacy_rule",
    "InMemoryProductCatalog",
    "ProductLookup",
    "ProductRecordModel",
    "resolve",
    "RuleStore",
    "RuleStoreError",
]
