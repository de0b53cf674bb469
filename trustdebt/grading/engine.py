"""
Grading Engine for Trust Debt

This module reduces the drift matrix to a calibrated score and grade band.

Calibration:
    calibrated = total_drift * (1 - sophistication_discount)

    The discount is a fixed, disclosed credit for architectural complexity.
    It is recorded in every grade report next to the raw total so the
    adjustment is never hidden.

Bands (default bounds 500 / 1500 / 3000):
    A: [0, 500]   B: (500, 1500]   C: (1500, 3000]   D: (3000, inf)
    A score exactly on a bound belongs to the lower band.
"""

import logging
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from trustdebt.config import PipelineConfig
from trustdebt.matrix import DriftMatrix
from trustdebt.models import Grade


logger = logging.getLogger(__name__)

GRADE_ORDER = (Grade.A, Grade.B, Grade.C, Grade.D)
CALIBRATION_NOTE = (
    "Calibrated score = total drift x (1 - sophistication discount); the discount "
    "is a fixed configuration constant crediting architectural complexity."
)


def calibrate(total_drift: float, discount: float = 0.30) -> float:
    """
    Apply the sophistication discount.

    Raises:
        ValueError: If the discount is outside [0, 1) or the total is negative
    """
    if not 0.0 <= discount < 1.0:
        raise ValueError(f"Discount must be within [0, 1), got {discount}")
    if total_drift < 0:
        raise ValueError(f"Total drift cannot be negative, got {total_drift}")
    return total_drift * (1.0 - discount)


def grade_for_score(score: float, bounds: Sequence[float] = (500.0, 1500.0, 3000.0)) -> Grade:
    """
    Map a calibrated score to its grade band.

    Args:
        score: Calibrated score (>= 0)
        bounds: Inclusive upper bounds of grades A, B and C

    Returns:
        The grade whose band contains the score

    Raises:
        ValueError: If the score is negative

    Example:
        >>> grade_for_score(500.0), grade_for_score(500.01)
        (<Grade.A: 'A'>, <Grade.B: 'B'>)
    """
    if score < 0:
        raise ValueError(f"Score cannot be negative, got {score}")
    return GRADE_ORDER[bisect_left(list(bounds), score)]


@dataclass(frozen=True)
class CategoryGrade:
    """Drift attributed to one category and its grade against the per-category bands."""

    category_id: str
    name: str
    row_drift: float
    column_drift: float
    diagonal_drift: float
    calibrated: float
    grade: Grade

    def to_dict(self) -> dict[str, Any]:
        return {
            "category_id": self.category_id,
            "name": self.name,
            "row_drift": self.row_drift,
            "column_drift": self.column_drift,
            "diagonal_drift": self.diagonal_drift,
            "calibrated": self.calibrated,
            "grade": self.grade.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoryGrade":
        return cls(
            category_id=data["category_id"],
            name=data["name"],
            row_drift=data["row_drift"],
            column_drift=data["column_drift"],
            diagonal_drift=data["diagonal_drift"],
            calibrated=data["calibrated"],
            grade=Grade(data["grade"]),
        )


@dataclass
class GradeReport:
    """
    Final output of the pipeline.

    Attributes:
        total_drift: Sum of every matrix cell's contribution
        discount: Sophistication discount applied
        calibrated_score: total_drift * (1 - discount)
        grade: Band of the calibrated score
        bounds: Band bounds used
        category_count: Matrix dimension
        breakdown: Per-category drift, worst first
        hotspots: Largest contributing cells
    """

    total_drift: float
    discount: float
    calibrated_score: float
    grade: Grade
    bounds: tuple[float, float, float]
    category_count: int
    breakdown: list[CategoryGrade] = field(default_factory=list)
    hotspots: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_drift": self.total_drift,
            "discount": self.discount,
            "calibrated_score": self.calibrated_score,
            "grade": self.grade.value,
            "bounds": list(self.bounds),
            "calibration": CALIBRATION_NOTE,
            "category_count": self.category_count,
            "breakdown": [entry.to_dict() for entry in self.breakdown],
            "hotspots": list(self.hotspots),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GradeReport":
        return cls(
            total_drift=data["total_drift"],
            discount=data["discount"],
            calibrated_score=data["calibrated_score"],
            grade=Grade(data["grade"]),
            bounds=tuple(data["bounds"]),
            category_count=data["category_count"],
            breakdown=[CategoryGrade.from_dict(entry) for entry in data["breakdown"]],
            hotspots=list(data["hotspots"]),
        )


def category_breakdown(matrix: DriftMatrix, config: PipelineConfig) -> list[CategoryGrade]:
    """
    Attribute drift to categories.

    Each category is graded on its calibrated row drift against the bands
    divided by the matrix size, so a uniform spread of drift gives every
    category the overall grade.
    """
    size = max(matrix.size, 1)
    bounds = [bound / size for bound in config.grade_bounds]
    entries = []
    for category in matrix.categories:
        row = sum(cell.contribution for cell in matrix.row(category.id))
        column = sum(cell.contribution for cell in matrix.column(category.id))
        diagonal = matrix.cell(category.id, category.id).contribution
        calibrated = calibrate(row, config.sophistication_discount)
        entries.append(
            CategoryGrade(
                category_id=category.id,
                name=category.name,
                row_drift=row,
                column_drift=column,
                diagonal_drift=diagonal,
                calibrated=calibrated,
                grade=grade_for_score(calibrated, bounds),
            )
        )
    entries.sort(key=lambda entry: (-entry.row_drift, entry.category_id))
    return entries


def grade_matrix(matrix: DriftMatrix, config: Optional[PipelineConfig] = None) -> GradeReport:
    """
    Grade a drift matrix.

    Args:
        matrix: Drift matrix from the matrix stage
        config: Discount, bounds and hotspot count

    Returns:
        GradeReport
    """
    config = config or PipelineConfig()
    total = matrix.total_drift
    calibrated = calibrate(total, config.sophistication_discount)
    grade = grade_for_score(calibrated, config.grade_bounds)
    logger.info(
        "Total drift %.2f, calibrated %.2f (discount %.0f%%): grade %s",
        total, calibrated, config.sophistication_discount * 100, grade.value,
    )
    return GradeReport(
        total_drift=total,
        discount=config.sophistication_discount,
        calibrated_score=calibrated,
        grade=grade,
        bounds=tuple(config.grade_bounds),
        category_count=matrix.size,
        breakdown=category_breakdown(matrix, config),
        hotspots=matrix.summary(config.hotspot_count).hotspots,
    )
