"""
Validation module for Trust Debt.

This module enforces the two structural properties of the taxonomy:
orthogonality of sibling categories and balance of their unit budgets.
"""

from trustdebt.validate.balance import BalanceResult, GroupBalance, rebalance_group, validate_balance
from trustdebt.validate.orthogonality import (
    OrthogonalityResult,
    PairCorrelation,
    Repair,
    category_vectors,
    measure_pairs,
    orthogonalize,
    sibling_pairs,
    validate_orthogonality,
)

__all__ = [
    "BalanceResult",
    "GroupBalance",
    "OrthogonalityResult",
    "PairCorrelation",
    "Repair",
    "category_vectors",
    "measure_pairs",
    "orthogonalize",
    "rebalance_group",
    "sibling_pairs",
    "validate_balance",
    "validate_orthogonality",
]
