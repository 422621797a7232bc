"""Fee type strategies.

Each rule ``type`` resolves to a ``FeeTypeCalculator``. The registry is
immutable; ``register`` returns a new registry so custom types can be added
per evaluation without touching shared state. Unknown type names resolve
to a zero-fee calculator.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Mapping, Optional

from customsfees.fees.models import FEE_FIXED, FEE_FLAT, FEE_PERCENTAGE, FEE_TIERED, FeeRuleModel

logger = logging.getLogger(__name__)


def normalize_rate(rate: float) -> float:
    """Return *rate* as a fraction.

    Values above 1 are whole percents; 1 itself is already a fraction (100%).
    """

    return rate / 100.0 if rate > 1 else rate


class FeeTypeCalculator(ABC):
    """Computes the unclamped fee for a rule against a monetary base."""

    @abstractmethod
    def compute(self, rule: FeeRuleModel, base: float) -> float:
        """Return the raw fee amount."""


class PercentageFee(FeeTypeCalculator):
    def compute(self, rule: FeeRuleModel, base: float) -> float:
        return normalize_rate(rule.rate) * base


class FlatFee(FeeTypeCalculator):
    def compute(self, rule: FeeRuleModel, base: float) -> float:
        return rule.amount


class TieredFee(FeeTypeCalculator):
    """First tier whose range contains the base decides the fee."""

    def compute(self, rule: FeeRuleModel, base: float) -> float:
        for tier in rule.tiers:
            if not tier.contains(base):
                continue
            if tier.rate is not None:
                return normalize_rate(tier.rate) * base
            if tier.amount is not None:
                return tier.amount
            return 0.0
        return 0.0


class ZeroFee(FeeTypeCalculator):
    def compute(self, rule: FeeRuleModel, base: float) -> float:
        return 0.0


class FeeTypeRegistry:
    """Immutable mapping of fee type names to calculators."""

    def __init__(self, calculators: Optional[Mapping[str, FeeTypeCalculator]] = None, fallback: Optional[FeeTypeCalculator] = None):
        self._calculators = MappingProxyType(dict(calculators or {}))
        self._fallback = fallback or ZeroFee()

    @classmethod
    def with_builtin_types(cls) -> "FeeTypeRegistry":
        flat = FlatFee()
        return cls(
            {
                FEE_PERCENTAGE: PercentageFee(),
                FEE_FLAT: flat,
                FEE_FIXED: flat,
                FEE_TIERED: TieredFee(),
            }
        )

    def register(self, name: str, calculator: FeeTypeCalculator) -> "FeeTypeRegistry":
        calculators = dict(self._calculators)
        calculators[name.strip().lower()] = calculator
        return FeeTypeRegistry(calculators, self._fallback)

    def get(self, name: str) -> FeeTypeCalculator:
        calculator = self._calculators.get(name)
        if calculator is None:
            logger.warning("Unknown fee type %r; rule contributes no fee", name)
            return self._fallback
        return calculator

    def __contains__(self, name: object) -> bool:
        return name in self._calculators

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._calculators))


DEFAULT_FEE_TYPES = FeeTypeRegistry.with_builtin_types()
