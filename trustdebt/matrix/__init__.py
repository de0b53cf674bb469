"""
Matrix module for Trust Debt.

This module builds the asymmetric drift matrix over the validated taxonomy
and the category profiles it is computed from.
"""

from trustdebt.matrix.builder import DriftMatrix, MatrixSummary, build_matrix, direction, self_consistency
from trustdebt.matrix.profiles import CategoryProfile, build_profiles

__all__ = [
    "CategoryProfile",
    "DriftMatrix",
    "MatrixSummary",
    "build_matrix",
    "build_profiles",
    "direction",
    "self_consistency",
]
