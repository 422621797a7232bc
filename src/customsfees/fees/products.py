"""Product lookup for customs attributes.

Variations inherit their parent's categories, and fall back to the
parent's HS code and country of origin when their own are empty.
Category memberships are expanded with every ancestor category.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

from customsfees.countries import normalize_country
from customsfees.fees.models import ProductAttributesModel

logger = logging.getLogger(__name__)


class ProductLookup(ABC):
    """Source of product attributes for the fee engine."""

    @abstractmethod
    def get_product_attributes(self, product_id: str) -> Optional[ProductAttributesModel]:
        """Return resolved attributes, or None for an unknown product."""


class ProductRecordModel(BaseModel):
    """Stored product customs data before variant fallback."""

    product_id: str
    parent_id: Optional[str] = None
    name: str = ""
    category_ids: List[int] = Field(default_factory=list)
    hs_code: str = ""
    country_of_origin: str = ""
    needs_shipping: bool = True

    model_config = ConfigDict(extra="forbid")

    @field_validator("product_id", "parent_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value) if value else None
        return value

    @field_validator("hs_code", mode="before")
    @classmethod
    def _strip_hs(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("country_of_origin", mode="before")
    @classmethod
    def _normalize_origin(cls, value: Any) -> str:
        return normalize_country(value)


class InMemoryProductCatalog(ProductLookup):
    """Product lookup over an in-memory product list and category tree."""

    def __init__(
        self,
        products: Iterable[ProductRecordModel | Mapping[str, Any]] = (),
        category_parents: Optional[Mapping[Any, Any]] = None,
    ):
        self._products: Dict[str, ProductRecordModel] = {}
        for raw in products:
            record = raw if isinstance(raw, ProductRecordModel) else ProductRecordModel.model_validate(raw)
            self._products[record.product_id] = record
        self._category_parents: Dict[int, int] = {
            int(child): int(parent) for child, parent in (category_parents or {}).items() if parent
        }

    def add(self, record: ProductRecordModel | Mapping[str, Any]) -> ProductRecordModel:
        record = record if isinstance(record, ProductRecordModel) else ProductRecordModel.model_validate(record)
        self._products[record.product_id] = record
        return record

    def category_ancestors(self, category_id: int) -> List[int]:
        ancestors: List[int] = []
        seen: Set[int] = {category_id}
        current = self._category_parents.get(category_id)
        while current is not None and current not in seen:
            ancestors.append(current)
            seen.add(current)
            current = self._category_parents.get(current)
        return ancestors

    def _expand_categories(self, category_ids: Iterable[int]) -> FrozenSet[int]:
        expanded: Set[int] = set()
        for category_id in category_ids:
            expanded.add(category_id)
            expanded.update(self.category_ancestors(category_id))
        return frozenset(expanded)

    def get_product_attributes(self, product_id: str) -> Optional[ProductAttributesModel]:
        record = self._products.get(str(product_id))
        if record is None:
            return None
        parent = self._products.get(record.parent_id) if record.parent_id else None
        if record.parent_id and parent is None:
            logger.debug("Parent %s of product %s not found; using own attributes", record.parent_id, product_id)

        category_source = parent.category_ids if parent is not None else record.category_ids
        hs_code = record.hs_code or (parent.hs_code if parent is not None else "")
        origin = record.country_of_origin or (parent.country_of_origin if parent is not None else "")
        return ProductAttributesModel(
            product_id=record.product_id,
            category_ids=self._expand_categories(category_source),
            hs_code=hs_code,
            country_of_origin=origin,
            needs_shipping=record.needs_shipping,
        )
