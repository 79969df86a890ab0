"""Debt/collateral accounting engine."""
from .core import CdpEngine
from .health import HealthFactorCalculator, calculate_health_factor, max_total_debt
from .transaction import ReentrancyGuard, Transaction
from .valuation import Valuation, scale_price

__all__ = [
    "CdpEngine",
    "HealthFactorCalculator",
    "ReentrancyGuard",
    "Transaction",
    "Valuation",
    "calculate_health_factor",
    "max_total_debt",
    "scale_price",
]
