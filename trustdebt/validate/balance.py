"""
Balance Validator for Trust Debt

Keeps sibling categories comparable in size. For every sibling group,
top-down, the coefficient of variation (population stdev / mean) of the
units must not exceed the configured bound; groups above it are pulled
toward their mean in bounded iterations.

Each iteration:
    target_i = mean + (units_i - mean) * (1 - step)
    units_i  = largest-remainder rounding of target_i

Design Decisions:
    - The group total never changes, so the parent's units stay the sum of
      its children
    - Rank order within the group is preserved; ShortLex positions never move
    - Children are rescaled to their parent's new units before their own
      group is checked
    - Integer units cannot always reach an arbitrary bound (five categories
      sharing 7 units have CV >= 0.35), so the effective bound is never below
      the CV of the most even integer split of the same total
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from trustdebt.config import PipelineConfig
from trustdebt.errors import BalanceViolation
from trustdebt.taxonomy import Taxonomy, allocate, coefficient_of_variation
from trustdebt.taxonomy.units import granularity_floor, preserve_rank


logger = logging.getLogger(__name__)

CV_EPSILON = 1e-9


@dataclass(frozen=True)
class GroupBalance:
    """Balance report of one sibling group."""

    parent_id: Optional[str]
    members: tuple[str, ...]
    cv_before: float
    cv_after: float
    bound: float
    iterations: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent_id": self.parent_id,
            "members": list(self.members),
            "cv_before": self.cv_before,
            "cv_after": self.cv_after,
            "bound": self.bound,
            "iterations": self.iterations,
        }


@dataclass
class BalanceResult:
    """
    Result of the balance stage.

    Attributes:
        taxonomy: Rebalanced taxonomy
        groups: Per sibling group CV report, top-down
        category_count: Validated size consumed by the matrix builder
    """

    taxonomy: Taxonomy
    groups: list[GroupBalance] = field(default_factory=list)
    category_count: int = 0

    @property
    def rebalanced(self) -> list[GroupBalance]:
        return [group for group in self.groups if group.iterations > 0]


def rebalance_group(
    units: list[int],
    config: PipelineConfig,
    floors: Optional[list[int]] = None,
) -> tuple[list[int], int, float]:
    """
    Pull one sibling group's units toward their mean until the CV is in bound.

    Args:
        units: Current units of the group, in ShortLex order
        config: CV bound, step and iteration cap
        floors: Fewest units each member can hold (defaults to 1 each)

    Returns:
        (new units, iterations used, effective bound)

    Raises:
        BalanceViolation: If the bound is not reached within the iteration cap,
                          or the total cannot cover the floors

    Example:
        >>> rebalance_group([100, 1], PipelineConfig())[0]
        [63, 38]
    """
    floors = floors or [1] * len(units)
    total = sum(units)
    bound = max(config.balance_cv_bound, granularity_floor(total, len(units)))
    if total < sum(floors):
        raise BalanceViolation(
            f"{total} units cannot cover {len(units)} categories",
            detail={"units": list(units), "floors": list(floors)},
        )
    if coefficient_of_variation(units) <= bound + CV_EPSILON:
        return list(units), 0, bound

    current = list(units)
    for iteration in range(1, config.balance_iterations + 1):
        mean = total / len(current)
        targets = [mean + (value - mean) * (1 - config.balance_step) for value in current]
        shares = allocate(
            [max(target - floor, 0.0) for target, floor in zip(targets, floors)],
            total,
            minimum=floors,
        )
        ranked = preserve_rank(units, shares)
        if all(share >= floor for share, floor in zip(ranked, floors)):
            shares = ranked
        current = shares
        if coefficient_of_variation(current) <= bound + CV_EPSILON:
            return current, iteration, bound

    raise BalanceViolation(
        f"Coefficient of variation {coefficient_of_variation(current):.3f} still above "
        f"{bound:.3f} after {config.balance_iterations} iterations",
        detail={"units": list(units), "last": current, "bound": bound},
    )


def validate_balance(
    taxonomy: Taxonomy,
    config: Optional[PipelineConfig] = None,
    on_group: Optional[Callable[[Optional[str]], None]] = None,
) -> BalanceResult:
    """
    Rebalance every sibling group of the taxonomy, top-down.

    Args:
        taxonomy: Taxonomy from the orthogonality stage
        config: CV bound, step and iteration cap
        on_group: Called with the parent code before each group (cancellation hook)

    Returns:
        BalanceResult

    Raises:
        BalanceViolation: If a group cannot be balanced, or the result breaks
                          the unit invariants
    """
    config = config or PipelineConfig()
    result = taxonomy
    reports = []

    for parent_id, members in taxonomy.sibling_groups():
        if on_group is not None:
            on_group(parent_id)
        codes = [member.id for member in members]
        units = [result.get(code).units for code in codes]
        floors = [result.leaf_count(code) for code in codes]
        try:
            balanced, iterations, bound = rebalance_group(units, config, floors)
        except BalanceViolation as exc:
            exc.detail["parent_id"] = parent_id
            exc.detail["members"] = codes
            raise
        if iterations:
            logger.info(
                "Rebalanced group under %s in %d iterations: %s -> %s",
                parent_id or "<root>", iterations, units, balanced,
            )
            result = result.with_units(dict(zip(codes, balanced)))
        reports.append(
            GroupBalance(
                parent_id=parent_id,
                members=tuple(codes),
                cv_before=coefficient_of_variation(units),
                cv_after=coefficient_of_variation(balanced),
                bound=bound,
                iterations=iterations,
            )
        )

    problems = result.validate_structure()
    if problems:
        raise BalanceViolation(
            "Rebalanced taxonomy breaks unit invariants: " + "; ".join(problems),
            detail={"problems": problems},
        )

    logger.info(
        "Balance: %d sibling groups checked, %d rebalanced",
        len(reports), sum(1 for report in reports if report.iterations),
    )
    return BalanceResult(taxonomy=result, groups=reports, category_count=len(result))
