"""
Integer unit allocation helpers shared by the taxonomy builder and validators.

Units are integers, so every proportional split goes through the
largest-remainder method: exact totals, deterministic tie-breaking by
position.
"""

import math
import statistics
from typing import Sequence, Union


def allocate(
    weights: Sequence[float],
    total: int,
    minimum: Union[int, Sequence[int]] = 0,
) -> list[int]:
    """
    Split an integer total proportionally to weights.

    Args:
        weights: Non-negative weights (all zero means an even split)
        total: Integer total to distribute exactly
        minimum: Floor granted to every entry (or one floor per entry) before
                 the proportional split

    Returns:
        Integer shares summing to total

    Raises:
        ValueError: If total cannot cover the minimum of every entry

    Example:
        >>> allocate([1, 1, 1], 10)
        [4, 3, 3]
    """
    count = len(weights)
    if count == 0:
        return []
    floors = [minimum] * count if isinstance(minimum, int) else list(minimum)
    if len(floors) != count:
        raise ValueError("One minimum per weight is required")
    if total < sum(floors):
        raise ValueError(f"Total {total} cannot cover the minimums of {count} entries")
    if any(weight < 0 for weight in weights):
        raise ValueError("Weights must be non-negative")

    remaining = total - sum(floors)
    weight_sum = float(sum(weights))
    if weight_sum <= 0:
        weights = [1.0] * count
        weight_sum = float(count)

    exact = [remaining * weight / weight_sum for weight in weights]
    shares = [math.floor(value) for value in exact]
    leftover = remaining - sum(shares)
    order = sorted(range(count), key=lambda i: (-(exact[i] - shares[i]), i))
    for index in order[:leftover]:
        shares[index] += 1
    return [share + floor for share, floor in zip(shares, floors)]


def preserve_rank(reference: Sequence[float], values: Sequence[int]) -> list[int]:
    """
    Reassign values so that their order follows the reference order.

    The multiset of values (and so their sum) is unchanged; the largest value
    goes to the entry with the largest reference, ties keep position order.
    """
    order = sorted(range(len(reference)), key=lambda i: (-reference[i], i))
    ranked = sorted(values, reverse=True)
    result = [0] * len(values)
    for index, value in zip(order, ranked):
        result[index] = value
    return result


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over mean; 0 for empty or zero-mean input."""
    if len(values) < 2:
        return 0.0
    mean = statistics.fmean(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values) / mean


def most_even(total: int, count: int) -> list[int]:
    """The most even integer split of total into count parts."""
    quotient, remainder = divmod(total, count)
    return [quotient + 1] * remainder + [quotient] * (count - remainder)


def granularity_floor(total: int, count: int) -> float:
    """Smallest coefficient of variation reachable with integer units."""
    if count < 2:
        return 0.0
    return coefficient_of_variation(most_even(total, count))
