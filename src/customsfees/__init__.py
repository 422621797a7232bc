"""customs-fees - destination-aware customs and import fees for carts."""

from . import fees
from .settings import FeeSettings
from .version import __version__

__all__ = [
    "fees",
    "FeeSettings",
    "__version__",
]
