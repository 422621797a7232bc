"""Cart context and the evaluation service tying the collaborators together.

Each evaluation reads the rule store once into an immutable snapshot and
passes it, with the cart and product lookup, into the pure fee functions.
The service itself holds no per-evaluation state.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from customsfees.fees.calculator import compute_cart_fees, evaluate_test_fee
from customsfees.fees.fee_types import FeeTypeRegistry
from customsfees.fees.models import FeeLine, FeeRuleModel, LineItemModel, ShipmentContextModel
from customsfees.fees.products import InMemoryProductCatalog, ProductLookup, ProductRecordModel
from customsfees.fees.rule_store import RuleStore
from customsfees.observability import evaluation_scope
from customsfees.settings import FeeSettings

logger = logging.getLogger(__name__)


class CartContext(ABC):
    """Source of the shipment context and line items for one cart."""

    @abstractmethod
    def get_shipment_context(self) -> ShipmentContextModel:
        ...

    @abstractmethod
    def get_line_items(self) -> List[LineItemModel]:
        ...


class StaticCartContext(CartContext):
    def __init__(self, shipment: ShipmentContextModel | Mapping[str, Any], items: List[LineItemModel | Mapping[str, Any]]):
        self._shipment = (
            shipment if isinstance(shipment, ShipmentContextModel) else ShipmentContextModel.model_validate(shipment)
        )
        self._items = [item if isinstance(item, LineItemModel) else LineItemModel.model_validate(item) for item in items]

    def get_shipment_context(self) -> ShipmentContextModel:
        return self._shipment

    def get_line_items(self) -> List[LineItemModel]:
        return list(self._items)


class CartPayloadModel(BaseModel):
    """Self-contained cart document: shipment, items and the products they reference."""

    shipment: ShipmentContextModel
    items: List[LineItemModel] = Field(default_factory=list)
    products: List[ProductRecordModel] = Field(default_factory=list)
    category_parents: Dict[int, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def cart_context(self) -> StaticCartContext:
        return StaticCartContext(self.shipment, list(self.items))

    def product_lookup(self) -> InMemoryProductCatalog:
        return InMemoryProductCatalog(self.products, self.category_parents)


class CustomsFeeService:
    """Computes cart fees from a rule store, a product lookup and settings."""

    def __init__(
        self,
        store: RuleStore,
        products: ProductLookup,
        settings: Optional[FeeSettings] = None,
        registry: Optional[FeeTypeRegistry] = None,
    ):
        self.store = store
        self.products = products
        self.settings = settings or FeeSettings()
        self.registry = registry

    def compute(
        self,
        cart: CartContext,
        *,
        display_mode: Optional[str] = None,
        evaluation_id: Optional[str] = None,
    ) -> List[FeeLine]:
        shipment = cart.get_shipment_context()
        snapshot = self.store.snapshot()
        with evaluation_scope(evaluation_id, destination=shipment.to_country, rule_count=len(snapshot)):
            return compute_cart_fees(
                cart.get_line_items(),
                shipment,
                snapshot,
                products=self.products,
                display_mode=display_mode or self.settings.display_mode,
                default_origin=self.settings.default_origin,
                registry=self.registry,
            )

    def preview(self, rule_or_country: Union[FeeRuleModel, Mapping[str, Any], str], cart_total: float) -> Optional[FeeLine]:
        return evaluate_test_fee(rule_or_country, cart_total, self.store.snapshot(), self.registry)
