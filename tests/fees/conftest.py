"""Shared fixtures for customs fee engine tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from customsfees.fees.models import FeeRuleModel, ProductAttributesModel


@pytest.fixture()
def make_rule() -> Callable[..., FeeRuleModel]:
    def _make(**fields: Any) -> FeeRuleModel:
        return FeeRuleModel.from_record(fields)

    return _make


@pytest.fixture()
def make_product() -> Callable[..., ProductAttributesModel]:
    def _make(product_id: str = "p1", **fields: Any) -> ProductAttributesModel:
        return ProductAttributesModel(product_id=product_id, **fields)

    return _make


@pytest.fixture()
def tshirt(make_product) -> ProductAttributesModel:
    return make_product("tee", category_ids=frozenset({10, 1}), hs_code="6109.10", country_of_origin="CN")
