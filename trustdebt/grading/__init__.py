"""
Grading module for Trust Debt.

This module calibrates the total drift and maps it to a grade band.
"""

from trustdebt.grading.engine import (
    CategoryGrade,
    GradeReport,
    calibrate,
    category_breakdown,
    grade_for_score,
    grade_matrix,
)

__all__ = [
    "CategoryGrade",
    "GradeReport",
    "calibrate",
    "category_breakdown",
    "grade_for_score",
    "grade_matrix",
]
