"""
Drift Matrix Builder for Trust Debt

This module builds the asymmetric N x N drift matrix over the final
taxonomy. Rows and columns follow the ShortLex order.

Cell values:
    weight_i        = units_i / mean(units of i's sibling group)
    share_c(i)      = mass of i in corpus c / total mass of i
    coupling_c(i,j) = share of i's mentions in corpus c that sit in sources
                      also mentioning j

    Off-diagonal (i, j):
        intent_value  = value_scale * weight_i * share_intent(i) * coupling_intent(i, j)
        reality_value = value_scale * weight_i * share_reality(i) * coupling_reality(i, j)
        contribution  = (intent_value - reality_value) ** 2

    Diagonal (i, i):
        intent_value  = value_scale * weight_i * share_intent(i)
        reality_value = value_scale * weight_i * share_reality(i)
        self_consistency = cosine(intent counts, reality counts of i's keywords)
                           * min(I_i, R_i) / max(I_i, R_i)
        contribution  = (1 - self_consistency) ** 2 * diagonal_scale

Design Decisions:
    - Coupling is directional (normalized by the row category's mentions),
      so cell (i, j) and cell (j, i) are independent measures
    - Every value is derived from counts; nothing is sampled
    - The builder rejects a taxonomy whose size differs from the size the
      balance stage validated
    - Rows are computed on a thread pool and assembled by position

Academic Context:
    Input: Taxonomy (ShortLex order) + category profiles + validated size
    Transformation: Directional co-occurrence -> squared intent/reality divergence
    Output: DriftMatrix with N * N cells and summary statistics
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import numpy as np

from trustdebt.config import PipelineConfig
from trustdebt.errors import DimensionMismatchError
from trustdebt.matrix.profiles import CategoryProfile
from trustdebt.models import INTENT, REALITY, Category, MatrixCell
from trustdebt.taxonomy import Taxonomy
from trustdebt.vectors import cosine_similarity


logger = logging.getLogger(__name__)

REALITY_EXCEEDS_INTENT = "reality_exceeds_intent"
INTENT_EXCEEDS_REALITY = "intent_exceeds_reality"
ALIGNED = "aligned"


def direction(cell: MatrixCell) -> str:
    """Which side of the cell is larger."""
    if cell.reality_value > cell.intent_value:
        return REALITY_EXCEEDS_INTENT
    if cell.intent_value > cell.reality_value:
        return INTENT_EXCEEDS_REALITY
    return ALIGNED


@dataclass
class MatrixSummary:
    """
    Summary statistics of a drift matrix.

    Attributes:
        total_drift: Sum of every cell's contribution
        diagonal_drift: Sum over the diagonal
        upper_drift: Sum over cells whose row precedes the column in ShortLex
            order (position only, regardless of which side is larger)
        lower_drift: Sum over cells whose row follows the column
        asymmetry_ratio: upper / lower, None when the lower triangle is zero
        reality_excess_drift: Off-diagonal sum over cells where reality exceeds intent
        intent_excess_drift: Off-diagonal sum over cells where intent exceeds reality
        hotspots: Largest contributing cells, largest first
    """

    total_drift: float
    diagonal_drift: float
    upper_drift: float
    lower_drift: float
    asymmetry_ratio: Optional[float]
    reality_excess_drift: float = 0.0
    intent_excess_drift: float = 0.0
    hotspots: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_drift": self.total_drift,
            "diagonal_drift": self.diagonal_drift,
            "upper_drift": self.upper_drift,
            "lower_drift": self.lower_drift,
            "asymmetry_ratio": self.asymmetry_ratio,
            "reality_excess_drift": self.reality_excess_drift,
            "intent_excess_drift": self.intent_excess_drift,
            "hotspots": list(self.hotspots),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatrixSummary":
        return cls(
            total_drift=data["total_drift"],
            diagonal_drift=data["diagonal_drift"],
            upper_drift=data["upper_drift"],
            lower_drift=data["lower_drift"],
            asymmetry_ratio=data.get("asymmetry_ratio"),
            reality_excess_drift=data.get("reality_excess_drift", 0.0),
            intent_excess_drift=data.get("intent_excess_drift", 0.0),
            hotspots=list(data.get("hotspots", [])),
        )


class DriftMatrix:
    """
    An N x N drift matrix in ShortLex order.

    Usage:
        matrix = build_matrix(taxonomy, profiles, expected_size=5)
        matrix.size, matrix.total_drift
        matrix.cell("A", "B").contribution
    """

    def __init__(self, categories: list[Category], cells: list[MatrixCell]) -> None:
        self.categories = list(categories)
        self.ids = [category.id for category in self.categories]
        if len(cells) != len(self.ids) ** 2:
            raise DimensionMismatchError(
                f"Matrix over {len(self.ids)} categories needs {len(self.ids) ** 2} cells, got {len(cells)}",
                detail={"categories": len(self.ids), "cells": len(cells)},
            )
        self._index = {code: position for position, code in enumerate(self.ids)}
        self._cells = {(cell.row_id, cell.col_id): cell for cell in cells}

    @property
    def size(self) -> int:
        return len(self.ids)

    def cell(self, row_id: str, col_id: str) -> MatrixCell:
        return self._cells[(row_id, col_id)]

    def cells(self) -> list[MatrixCell]:
        """All cells, row-major in ShortLex order."""
        return [self._cells[(row, col)] for row in self.ids for col in self.ids]

    def row(self, row_id: str) -> list[MatrixCell]:
        return [self._cells[(row_id, col)] for col in self.ids]

    def column(self, col_id: str) -> list[MatrixCell]:
        return [self._cells[(row, col_id)] for row in self.ids]

    def diagonal(self) -> list[MatrixCell]:
        return [self._cells[(code, code)] for code in self.ids]

    def off_diagonal(self) -> list[MatrixCell]:
        return [cell for cell in self.cells() if not cell.is_diagonal]

    @property
    def total_drift(self) -> float:
        return float(sum(cell.contribution for cell in self.cells()))

    def contributions(self) -> np.ndarray:
        """Contributions as an N x N array."""
        return np.array([[self._cells[(r, c)].contribution for c in self.ids] for r in self.ids])

    def summary(self, hotspot_count: int = 10) -> MatrixSummary:
        """Compute the triangle sums, direction sums, asymmetry ratio and hotspots."""
        diagonal = upper = lower = 0.0
        by_direction = {REALITY_EXCEEDS_INTENT: 0.0, INTENT_EXCEEDS_REALITY: 0.0, ALIGNED: 0.0}
        for cell in self.cells():
            row, col = self._index[cell.row_id], self._index[cell.col_id]
            if row == col:
                diagonal += cell.contribution
                continue
            if row < col:
                upper += cell.contribution
            else:
                lower += cell.contribution
            by_direction[direction(cell)] += cell.contribution

        ranked = sorted(
            (cell for cell in self.cells() if cell.contribution > 0),
            key=lambda cell: (-cell.contribution, self._index[cell.row_id], self._index[cell.col_id]),
        )
        hotspots = [
            {**cell.to_dict(), "direction": direction(cell)}
            for cell in ranked[:hotspot_count]
        ]
        return MatrixSummary(
            total_drift=diagonal + upper + lower,
            diagonal_drift=diagonal,
            upper_drift=upper,
            lower_drift=lower,
            asymmetry_ratio=upper / lower if lower > 0 else None,
            reality_excess_drift=by_direction[REALITY_EXCEEDS_INTENT],
            intent_excess_drift=by_direction[INTENT_EXCEEDS_REALITY],
            hotspots=hotspots,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": [
                {"id": c.id, "name": c.name, "units": c.units, "position": c.position}
                for c in self.categories
            ],
            "category_count": self.size,
            "cells": [cell.to_dict() for cell in self.cells()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DriftMatrix":
        categories = [
            Category(
                id=entry["id"],
                name=entry["name"],
                parent_id=entry["id"][:-1] or None,
                depth=len(entry["id"]) - 1,
                units=entry["units"],
                position=entry["position"],
            )
            for entry in data["categories"]
        ]
        return cls(categories, [MatrixCell.from_dict(cell) for cell in data["cells"]])


def _coupling(source: dict[str, int], other: dict[str, int]) -> float:
    """Share of one category's mentions that sit in sources also mentioning the other."""
    total = sum(source.values())
    if total == 0:
        return 0.0
    shared = sum(count for identifier, count in source.items() if other.get(identifier, 0) > 0)
    return shared / total


def self_consistency(profile: CategoryProfile) -> float:
    """
    Alignment of a category's intent and reality keyword usage, in [0, 1].

    Cosine of the per-keyword intent and reality counts, damped by the ratio
    of the smaller corpus mass to the larger one.

    Example:
        >>> self_consistency(CategoryProfile("A", keyword_counts={"function": (0, 2)}))
        0.0
    """
    tokens = sorted(profile.keyword_counts)
    intent = np.array([profile.keyword_counts[t][0] for t in tokens], dtype=float)
    reality = np.array([profile.keyword_counts[t][1] for t in tokens], dtype=float)
    total_intent, total_reality = intent.sum(), reality.sum()
    larger = max(total_intent, total_reality)
    if larger == 0:
        return 0.0
    ratio = float(min(total_intent, total_reality) / larger)
    return max(0.0, cosine_similarity(intent, reality)) * ratio


def sibling_weights(taxonomy: Taxonomy) -> dict[str, float]:
    """units_i / mean units of i's sibling group."""
    weights = {}
    for _, members in taxonomy.sibling_groups():
        mean = sum(member.units for member in members) / len(members)
        for member in members:
            weights[member.id] = member.units / mean if mean > 0 else 0.0
    return weights


def _shares(profile: CategoryProfile) -> tuple[float, float]:
    intent, reality = profile.intent_mass, profile.reality_mass
    if intent + reality == 0:
        return 0.0, 0.0
    return intent / (intent + reality), reality / (intent + reality)


def build_row(
    row: Category,
    columns: list[Category],
    profiles: dict[str, CategoryProfile],
    weight: float,
    config: PipelineConfig,
) -> list[MatrixCell]:
    """Compute one row of the matrix."""
    profile = profiles[row.id]
    intent_share, reality_share = _shares(profile)
    base = config.value_scale * weight
    cells = []
    for column in columns:
        if column.id == row.id:
            intent_value = base * intent_share
            reality_value = base * reality_share
            contribution = (1.0 - self_consistency(profile)) ** 2 * config.diagonal_scale
        else:
            other = profiles[column.id]
            intent_value = base * intent_share * _coupling(profile.sources(INTENT), other.sources(INTENT))
            reality_value = base * reality_share * _coupling(profile.sources(REALITY), other.sources(REALITY))
            contribution = (intent_value - reality_value) ** 2
        cells.append(
            MatrixCell(
                row_id=row.id,
                col_id=column.id,
                intent_value=intent_value,
                reality_value=reality_value,
                contribution=contribution,
            )
        )
    return cells


def build_matrix(
    taxonomy: Taxonomy,
    profiles: dict[str, CategoryProfile],
    expected_size: int,
    config: Optional[PipelineConfig] = None,
    workers: Optional[int] = None,
    on_row: Optional[Callable[[str], None]] = None,
) -> DriftMatrix:
    """
    Build the drift matrix of a validated taxonomy.

    Args:
        taxonomy: Final taxonomy, iterated in ShortLex order
        profiles: Category profiles from the orthogonality stage
        expected_size: Category count validated by the balance stage
        config: Scales and pool size
        workers: Thread pool size (defaults to config.workers)
        on_row: Called with each row code before it is computed (cancellation hook)

    Returns:
        DriftMatrix with expected_size ** 2 cells

    Raises:
        DimensionMismatchError: If the taxonomy size differs from expected_size,
                                or a category has no profile
    """
    config = config or PipelineConfig()
    categories = taxonomy.categories()
    if len(categories) != expected_size:
        raise DimensionMismatchError(
            f"Taxonomy has {len(categories)} categories, validated size is {expected_size}",
            detail={"expected": expected_size, "actual": len(categories)},
        )
    missing = [category.id for category in categories if category.id not in profiles]
    if missing:
        raise DimensionMismatchError(
            f"No profile for categories: {', '.join(missing)}",
            detail={"missing": missing},
        )

    weights = sibling_weights(taxonomy)

    def compute(row: Category) -> list[MatrixCell]:
        if on_row is not None:
            on_row(row.id)
        return build_row(row, categories, profiles, weights[row.id], config)

    with ThreadPoolExecutor(max_workers=workers or config.workers) as pool:
        rows = list(pool.map(compute, categories))

    matrix = DriftMatrix(categories, [cell for row in rows for cell in row])
    logger.info("Built %dx%d drift matrix, total drift %.2f", matrix.size, matrix.size, matrix.total_drift)
    return matrix
