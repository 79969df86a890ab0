"""Price source implementations."""
from .fixed import FixedPriceSource
from .pyth import PythPriceSource

__all__ = ["FixedPriceSource", "PythPriceSource"]
