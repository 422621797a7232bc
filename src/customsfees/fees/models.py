"""Records consumed and produced by the customs fee engine.

Rules arrive from the rule store as loosely-typed mappings. They are
migrated onto the canonical field names once, at load time, and validated
into frozen ``FeeRuleModel`` instances so matching never has to branch on
which legacy keys a record happened to carry.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from customsfees.countries import normalize_country

logger = logging.getLogger(__name__)

MATCH_ALL = "all"
MATCH_CATEGORY = "category"
MATCH_HS_CODE = "hs_code"
MATCH_COMBINED = "combined"
MATCH_TYPES = (MATCH_ALL, MATCH_CATEGORY, MATCH_HS_CODE, MATCH_COMBINED)

STACK_ADD = "add"
STACK_OVERRIDE = "override"
STACK_EXCLUSIVE = "exclusive"
STACKING_MODES = (STACK_ADD, STACK_OVERRIDE, STACK_EXCLUSIVE)

FEE_PERCENTAGE = "percentage"
FEE_FLAT = "flat"
FEE_FIXED = "fixed"
FEE_TIERED = "tiered"

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _as_float(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0.0
    return value


def _decode_json_list(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            return [part for part in (piece.strip() for piece in text.split(",")) if part]
        return decoded
    return value


class FeeTierModel(BaseModel):
    """One band of a tiered rule; ``max`` of None or 0 means unbounded."""

    min: float = 0.0
    max: Optional[float] = None
    rate: Optional[float] = None
    amount: Optional[float] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("min", mode="before")
    @classmethod
    def _coerce_min(cls, value: Any) -> Any:
        return _as_float(value)

    @field_validator("max", "rate", "amount", mode="before")
    @classmethod
    def _coerce_optional(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def upper_bound(self) -> float:
        if self.max is None or self.max <= 0:
            return float("inf")
        return self.max

    def contains(self, total: float) -> bool:
        return self.min <= total <= self.upper_bound


class FeeRuleModel(BaseModel):
    """Canonical customs fee rule.

    ``country`` is retained only as the legacy destination marker; matching
    reads ``from_country``/``to_country`` after ``migrate_legacy_rule`` has
    folded the legacy fields into them.
    """

    rule_id: Optional[int] = None
    country: str = ""
    from_country: str = ""
    to_country: str = ""
    match_type: str = MATCH_ALL
    category_ids: Tuple[int, ...] = ()
    hs_code_pattern: str = ""
    type: str = ""
    rate: float = 0.0
    amount: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    tiers: Tuple[FeeTierModel, ...] = ()
    label: str = ""
    taxable: bool = True
    tax_class: str = ""
    priority: int = Field(default=0, ge=0)
    stacking_mode: str = STACK_ADD

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("country", "from_country", "to_country", mode="before")
    @classmethod
    def _normalize_country_fields(cls, value: Any) -> str:
        return normalize_country(value)

    @field_validator("match_type", "type", "stacking_mode", mode="before")
    @classmethod
    def _normalize_enum_text(cls, value: Any, info: ValidationInfo) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return {"match_type": MATCH_ALL, "stacking_mode": STACK_ADD}.get(info.field_name, "")
        return str(value).strip().lower()

    @field_validator("label", "tax_class", "hs_code_pattern", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("rate", "amount", "minimum", "maximum", mode="before")
    @classmethod
    def _coerce_amounts(cls, value: Any) -> Any:
        return _as_float(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            try:
                return abs(int(float(value)))
            except (ValueError, OverflowError):
                # Left for the int validator to reject.
                return value
        return value

    @field_validator("taxable", mode="before")
    @classmethod
    def _coerce_taxable(cls, value: Any) -> Any:
        if value is None:
            return True
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return value

    @field_validator("category_ids", mode="before")
    @classmethod
    def _coerce_category_ids(cls, value: Any) -> Tuple[int, ...]:
        value = _decode_json_list(value)
        if value is None:
            return ()
        if isinstance(value, (int, str)):
            value = [value]
        if not isinstance(value, (list, tuple, set, frozenset)):
            # Unreadable category data does not restrict the rule.
            return ()
        ids: List[int] = []
        for item in value:
            try:
                category_id = int(item)
            except (TypeError, ValueError):
                continue
            if category_id > 0 and category_id not in ids:
                ids.append(category_id)
        return tuple(ids)

    @field_validator("tiers", mode="before")
    @classmethod
    def _coerce_tiers(cls, value: Any) -> Any:
        value = _decode_json_list(value)
        if value is None:
            return ()
        return value

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FeeRuleModel":
        return cls.model_validate(migrate_legacy_rule(record))

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible mapping persisted by the rule store."""

        payload = self.model_dump(mode="json", exclude={"rule_id"})
        payload["tiers"] = [
            {key: val for key, val in tier.items() if val is not None} for tier in payload["tiers"]
        ]
        return payload


def migrate_legacy_rule(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Map legacy field names onto the canonical rule fields.

    ``origin_country`` becomes ``from_country`` and the legacy destination
    ``country`` fills ``to_country`` whenever the canonical field is absent
    or empty. ``origin_country`` is dropped; ``country`` is kept because it
    still contributes to the specificity score.
    """

    migrated = dict(record)
    legacy_origin = migrated.pop("origin_country", None)
    if not normalize_country(migrated.get("from_country")) and normalize_country(legacy_origin):
        migrated["from_country"] = legacy_origin
    legacy_destination = migrated.get("country")
    if not normalize_country(migrated.get("to_country")) and normalize_country(legacy_destination):
        migrated["to_country"] = legacy_destination
    return migrated


def coerce_rules(raw_rules: Iterable[Any] | Mapping[Any, Any] | None) -> Tuple[FeeRuleModel, ...]:
    """Validate a raw rule collection into an immutable snapshot.

    Records that fail validation are logged and skipped so a single bad rule
    cannot break fee computation for the whole cart.
    """

    if raw_rules is None:
        return ()
    if isinstance(raw_rules, Mapping):
        entries = list(raw_rules.items())
    else:
        entries = list(enumerate(raw_rules))

    rules: List[FeeRuleModel] = []
    for position, raw in entries:
        if isinstance(raw, FeeRuleModel):
            rule = raw
        elif isinstance(raw, Mapping):
            try:
                rule = FeeRuleModel.from_record(raw)
            except ValidationError as exc:
                logger.warning("Skipping malformed rule %s: %s", position, exc.errors(include_url=False))
                continue
        else:
            logger.warning("Skipping rule %s: expected a mapping, got %s", position, type(raw).__name__)
            continue
        if rule.rule_id is None:
            try:
                rule = rule.model_copy(update={"rule_id": int(position)})
            except (TypeError, ValueError):
                pass
        rules.append(rule)
    return tuple(rules)


class ProductAttributesModel(BaseModel):
    """Customs-relevant product attributes with variant fallback resolved."""

    product_id: str
    category_ids: frozenset[int] = Field(default_factory=frozenset)
    hs_code: str = ""
    country_of_origin: str = ""
    needs_shipping: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("hs_code", mode="before")
    @classmethod
    def _strip_hs(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("country_of_origin", mode="before")
    @classmethod
    def _normalize_origin(cls, value: Any) -> str:
        return normalize_country(value)


class ShipmentContextModel(BaseModel):
    """Shipment-wide inputs for one cart evaluation."""

    from_country: str = ""
    to_country: str
    cart_total: float = Field(ge=0.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("from_country", "to_country", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> str:
        return normalize_country(value)


class LineItemModel(BaseModel):
    """Cart line item; ``line_total`` overrides the cart total as fee base."""

    product_id: str
    quantity: int = Field(default=1, ge=0)
    line_total: Optional[float] = Field(default=None, ge=0.0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


@dataclass(frozen=True)
class FeeLine:
    """One resolved, costed fee entry attached to a cart."""

    label: str
    amount: float
    taxable: bool = True
    tax_class: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
