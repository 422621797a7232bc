"""Customs fee calculation and cart-level aggregation.

Fees are assessed per cart line item: each item's product is resolved
against the rule snapshot, every resolved rule is costed against the
item's monetary base, and the per-item fee lines are folded into the
cart's fee set according to the display mode.

  fee = clamp_max(clamp_min(type_calculator(rule, base)))

A rule whose rounded fee is not positive contributes no fee line.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from customsfees.countries import country_display_name, country_matches, normalize_country
from customsfees.fees.fee_types import DEFAULT_FEE_TYPES, FeeTypeRegistry
from customsfees.fees.models import (
    FeeLine,
    FeeRuleModel,
    LineItemModel,
    ProductAttributesModel,
    ShipmentContextModel,
    coerce_rules,
)
from customsfees.fees.resolver import resolve
from customsfees.observability import log_event
from customsfees.settings import DISPLAY_BREAKDOWN, normalize_display_mode

logger = logging.getLogger(__name__)

GENERIC_FEE_LABEL = "Customs & Import Fees"

_CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Round to cents, half away from zero."""

    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def resolve_fee_label(rule: FeeRuleModel, to_country: str) -> str:
    if rule.label:
        return rule.label
    country_name = country_display_name(to_country)
    if not country_name:
        return GENERIC_FEE_LABEL
    return f"{GENERIC_FEE_LABEL} ({country_name})"


def calculate_rule_fee(rule: FeeRuleModel, base: float, registry: Optional[FeeTypeRegistry] = None) -> float:
    """Return the clamped, rounded fee *rule* charges on *base*."""

    registry = registry or DEFAULT_FEE_TYPES
    fee = registry.get(rule.type).compute(rule, base)
    if rule.minimum > 0:
        fee = max(fee, rule.minimum)
    if rule.maximum > 0:
        fee = min(fee, rule.maximum)
    return round_money(fee)


def calculate(
    resolved_rules: Iterable[FeeRuleModel],
    cart_total: float,
    to_country: str = "",
    registry: Optional[FeeTypeRegistry] = None,
) -> List[FeeLine]:
    """Cost each resolved rule against *cart_total*, dropping non-positive fees."""

    lines: List[FeeLine] = []
    for rule in resolved_rules:
        amount = calculate_rule_fee(rule, cart_total, registry)
        if amount <= 0:
            continue
        lines.append(
            FeeLine(
                label=resolve_fee_label(rule, to_country),
                amount=amount,
                taxable=rule.taxable,
                tax_class=rule.tax_class,
            )
        )
    return lines


def aggregate_fee_lines(fees: Sequence[FeeLine], display_mode: str = "single") -> List[FeeLine]:
    """Fold per-item fee lines into the cart's fee set.

    ``breakdown`` emits one line per distinct label (tax settings from the
    first contributor); ``single`` emits one combined line whose tax
    settings come from the last fee processed.
    """

    if not fees:
        return []

    if normalize_display_mode(display_mode) == DISPLAY_BREAKDOWN:
        grouped: dict[str, dict[str, Any]] = {}
        for fee in fees:
            group = grouped.setdefault(
                fee.label,
                {"amount": 0.0, "taxable": fee.taxable, "tax_class": fee.tax_class},
            )
            group["amount"] += fee.amount
        return [
            FeeLine(label=label, amount=round_money(data["amount"]), taxable=data["taxable"], tax_class=data["tax_class"])
            for label, data in grouped.items()
        ]

    total = 0.0
    taxable = True
    tax_class = ""
    labels: List[str] = []
    for fee in fees:
        total += fee.amount
        if fee.label and fee.label not in labels:
            labels.append(fee.label)
        taxable = fee.taxable
        tax_class = fee.tax_class
    label = labels[0] if len(labels) == 1 else GENERIC_FEE_LABEL
    return [FeeLine(label=label, amount=round_money(total), taxable=taxable, tax_class=tax_class)]


def _lookup_product(products: Any, product_id: str) -> Optional[ProductAttributesModel]:
    if isinstance(products, Mapping):
        found = products.get(product_id)
        if found is None or isinstance(found, ProductAttributesModel):
            return found
        return ProductAttributesModel.model_validate({"product_id": product_id, **dict(found)})
    return products.get_product_attributes(product_id)


def allocate_line_bases(items: Sequence[LineItemModel], cart_total: float) -> List[float]:
    """Return the monetary fee base of each line item.

    A line's own ``line_total`` is its base. Whatever part of *cart_total*
    those totals leave uncovered is shared across the remaining lines in
    proportion to their quantity; zero-quantity lines get nothing.
    """

    explicit = sum(item.line_total for item in items if item.line_total is not None)
    remainder = max(cart_total - explicit, 0.0)
    shared_units = sum(item.quantity for item in items if item.line_total is None)
    bases: List[float] = []
    for item in items:
        if item.line_total is not None:
            bases.append(item.line_total)
        elif shared_units:
            bases.append(remainder * item.quantity / shared_units)
        else:
            bases.append(0.0)
    return bases


def compute_cart_fees(
    line_items: Iterable[LineItemModel | Mapping[str, Any]],
    shipment_context: ShipmentContextModel | Mapping[str, Any],
    rules: Iterable[Any],
    *,
    products: Any,
    display_mode: str = "single",
    default_origin: str = "",
    registry: Optional[FeeTypeRegistry] = None,
) -> List[FeeLine]:
    """Compute the cart's customs fee lines.

    Parameters
    ----------
    line_items:
        Cart lines; a line's ``line_total`` is its fee base, otherwise it
        takes a quantity-weighted share of the uncovered ``cart_total``.
        Zero-quantity lines are skipped.
    shipment_context:
        Destination, fallback origin and cart total for this evaluation.
    rules:
        Rule snapshot (records or ``FeeRuleModel`` instances); malformed
        records are skipped.
    products:
        A product lookup exposing ``get_product_attributes(product_id)`` or
        a mapping of product id to attributes.
    display_mode:
        ``single`` or ``breakdown`` aggregation.
    default_origin:
        Origin used when neither the product nor the shipment names one;
        a product left without any origin is skipped.
    """
    if shipment_context is None:
        raise ValueError("shipment_context is required")
    if not isinstance(shipment_context, ShipmentContextModel):
        shipment_context = ShipmentContextModel.model_validate(shipment_context)

    snapshot = coerce_rules(rules)
    if not snapshot:
        return []

    destination = shipment_context.to_country
    fallback_origin = shipment_context.from_country or normalize_country(default_origin)
    logger.debug(
        "Starting customs fee calculation for destination %s with %d rules configured",
        destination or "<none>",
        len(snapshot),
    )

    items = [item if isinstance(item, LineItemModel) else LineItemModel.model_validate(item) for item in line_items]
    bases = allocate_line_bases(items, shipment_context.cart_total)

    item_fees: List[FeeLine] = []
    for item, base in zip(items, bases):
        if item.quantity == 0:
            logger.debug("Skipping line item %s: zero quantity", item.product_id)
            continue
        product = _lookup_product(products, item.product_id)
        if product is None:
            logger.warning("Skipping line item %s: product not found", item.product_id)
            continue
        if not product.needs_shipping:
            logger.debug("Skipping product %s: does not require shipping", item.product_id)
            continue

        origin = product.country_of_origin or fallback_origin
        if not origin:
            logger.debug("Skipping product %s: no country of origin and no default origin set", item.product_id)
            continue
        resolved = resolve(snapshot, product, origin, destination)
        logger.debug(
            "Product %s (origin %s, HS %s, base %.2f): %d rule(s) resolved",
            item.product_id,
            origin,
            product.hs_code or "<none>",
            base,
            len(resolved),
        )
        for line in calculate(resolved, base, destination, registry):
            logger.debug("Applied %s = %.2f to product %s", line.label, line.amount, item.product_id)
            item_fees.append(line)

    fees = aggregate_fee_lines(item_fees, display_mode)
    log_event(
        "customs_fees_computed",
        destination=destination,
        cart_total=shipment_context.cart_total,
        fee_count=len(fees),
        fee_total=round_money(sum(fee.amount for fee in fees)),
    )
    return fees


def evaluate_test_fee(
    rule_or_country: Union[FeeRuleModel, Mapping[str, Any], str],
    cart_total: float,
    rules: Iterable[Any] = (),
    registry: Optional[FeeTypeRegistry] = None,
) -> Optional[FeeLine]:
    """Preview the fee for a single rule, or for every rule reaching a country.

    A rule is costed directly without resolution. A country code costs
    every rule whose destination gate admits that country and combines the
    results into one line. Returns None when nothing charges a fee.
    """

    if cart_total is None or cart_total <= 0:
        raise ValueError("cart_total must be positive for a test calculation")

    if isinstance(rule_or_country, str):
        country = normalize_country(rule_or_country)
        if not country:
            raise ValueError("a destination country is required for a test calculation")
        candidates = [rule for rule in coerce_rules(rules) if country_matches(rule.to_country, country)]
        combined = aggregate_fee_lines(calculate(candidates, cart_total, country, registry))
        return combined[0] if combined else None

    rule = rule_or_country if isinstance(rule_or_country, FeeRuleModel) else FeeRuleModel.from_record(rule_or_country)
    lines = calculate([rule], cart_total, rule.to_country, registry)
    return lines[0] if lines else None
