"""
Orthogonality Validator for Trust Debt

This module checks that sibling categories measure independent things and
repairs sibling pairs whose keyword vectors are correlated.

Category vectors:
    With M the source x token occurrence matrix and k the indicator of a
    category's keywords, the category vector is M^T (M k): the token context
    of the sources in which the category is discussed. Two categories that
    are always discussed together get near-identical vectors.

Repair:
    The later sibling (ShortLex order) of a violating pair is re-projected
    orthogonally against the earlier one, b' = b - (b.a / a.a) a, and the
    group's units are reweighted by how much of each vector survived.
    Repairs run in bounded passes; anything still correlated after the last
    pass fails the stage.

Design Decisions:
    - A pair violates only above threshold + tolerance; values in between
      are reported as near misses
    - Pair checks run on a thread pool and are collected in pair order
    - Pearson repair projects the mean-centered vectors, so the repaired pair
      has zero Pearson correlation too

Academic Context:
    Input: Taxonomy + KeywordTable
    Transformation: Context vectors -> pairwise correlation -> Gram-Schmidt style repair
    Output: Repaired taxonomy, correlation report, repair log, category profiles
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Callable, Optional

import numpy as np

from trustdebt.config import PipelineConfig
from trustdebt.errors import OrthogonalityViolation
from trustdebt.extract import KeywordTable
from trustdebt.matrix.profiles import CategoryProfile, build_profiles
from trustdebt.taxonomy import Taxonomy, allocate
from trustdebt.vectors import correlation, project_out


logger = logging.getLogger(__name__)

# Relative norm below which a repaired vector is treated as fully absorbed.
ZERO_TOLERANCE = 1e-9


@dataclass(frozen=True)
class PairCorrelation:
    """Measured correlation of one sibling pair."""

    first: str
    second: str
    value: float
    violating: bool
    near_miss: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "pair": [self.first, self.second],
            "value": self.value,
            "violating": self.violating,
            "near_miss": self.near_miss,
        }


@dataclass(frozen=True)
class Repair:
    """One re-projection applied during a repair pass."""

    pass_number: int
    kept: str
    repaired: str
    before: float
    retained: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": self.pass_number,
            "kept": self.kept,
            "repaired": self.repaired,
            "before": self.before,
            "retained": self.retained,
        }


@dataclass
class OrthogonalityResult:
    """
    Result of the orthogonality stage.

    Attributes:
        taxonomy: Taxonomy with units reweighted after repairs
        correlations: Final correlation of every sibling pair
        repairs: Re-projections applied, in order
        passes: Number of repair passes used
        profiles: Per-category profiles for the matrix builder
    """

    taxonomy: Taxonomy
    correlations: list[PairCorrelation] = field(default_factory=list)
    repairs: list[Repair] = field(default_factory=list)
    passes: int = 0
    profiles: dict[str, CategoryProfile] = field(default_factory=dict)

    @property
    def near_misses(self) -> list[PairCorrelation]:
        return [entry for entry in self.correlations if entry.near_miss]


def category_vectors(taxonomy: Taxonomy, table: KeywordTable) -> dict[str, np.ndarray]:
    """
    Compute the context vector of every category over the table's tokens.

    Returns:
        Category code -> vector of length len(table)
    """
    tokens = table.tokens()
    column = {token: index for index, token in enumerate(tokens)}
    _, matrix = table.occurrence_matrix(tokens)
    vectors = {}
    for category in taxonomy:
        indicator = np.zeros(len(tokens))
        for token in category.keywords:
            if token in column:
                indicator[column[token]] = 1.0
        vectors[category.id] = matrix.T @ (matrix @ indicator)
    return vectors


def sibling_pairs(taxonomy: Taxonomy) -> list[tuple[str, str]]:
    """All (earlier, later) sibling pairs, group by group in ShortLex order."""
    pairs = []
    for _, members in taxonomy.sibling_groups():
        pairs.extend((a.id, b.id) for a, b in combinations(members, 2))
    return pairs


def measure_pairs(
    vectors: dict[str, np.ndarray],
    pairs: list[tuple[str, str]],
    config: PipelineConfig,
    workers: Optional[int] = None,
) -> list[PairCorrelation]:
    """
    Measure the correlation of each pair.

    Args:
        vectors: Category vectors
        pairs: Pairs to measure
        config: Threshold, tolerance and correlation method
        workers: Thread pool size (defaults to config.workers)

    Returns:
        One PairCorrelation per pair, in the order given

    Example:
        >>> vectors = {"A": np.array([1.0, 0.0]), "B": np.array([0.5, 0.866])}
        >>> measure_pairs(vectors, [("A", "B")], PipelineConfig())[0].violating
        True
    """

    def measure(pair: tuple[str, str]) -> PairCorrelation:
        first, second = pair
        value = correlation(vectors[first], vectors[second], config.correlation_method)
        magnitude = abs(value)
        return PairCorrelation(
            first=first,
            second=second,
            value=value,
            violating=magnitude > config.violation_bound,
            near_miss=config.orthogonality_threshold < magnitude <= config.violation_bound,
        )

    with ThreadPoolExecutor(max_workers=workers or config.workers) as pool:
        return list(pool.map(measure, pairs))


def repair_vector(basis: np.ndarray, vector: np.ndarray, method: str = "cosine") -> np.ndarray:
    """
    Remove from vector its component along basis.

    For Pearson the mean-centered vectors are projected and the original mean
    restored, which zeroes the Pearson correlation of the pair.
    """
    vector = np.asarray(vector, dtype=float)
    if method == "pearson":
        mean = vector.mean()
        repaired = project_out(vector - mean, basis - np.mean(basis)) + mean
        residual = repaired - mean
    else:
        repaired = project_out(vector, basis)
        residual = repaired
    if np.linalg.norm(residual) <= ZERO_TOLERANCE * max(1.0, float(np.linalg.norm(vector))):
        return np.zeros_like(vector)
    return repaired


def orthogonalize(
    vectors: dict[str, np.ndarray],
    pairs: list[tuple[str, str]],
    config: PipelineConfig,
    on_pass: Optional[Callable[[int], None]] = None,
) -> tuple[dict[str, np.ndarray], list[Repair], int]:
    """
    Repair violating pairs until none remain or the pass budget runs out.

    Args:
        vectors: Category vectors (not modified)
        pairs: Sibling pairs in check order
        config: Bounds, method and pass budget
        on_pass: Called with the pass number before each pass (cancellation hook)

    Returns:
        (repaired vectors, repair log, passes used)

    Raises:
        OrthogonalityViolation: If a pair still violates after the last pass
    """
    current = {code: np.asarray(vector, dtype=float).copy() for code, vector in vectors.items()}
    repairs: list[Repair] = []

    for pass_number in range(1, config.orthogonality_passes + 1):
        if on_pass is not None:
            on_pass(pass_number)
        violations = [entry for entry in measure_pairs(current, pairs, config) if entry.violating]
        if not violations:
            return current, repairs, pass_number - 1
        for entry in violations:
            before = np.linalg.norm(current[entry.second])
            current[entry.second] = repair_vector(
                current[entry.first], current[entry.second], config.correlation_method,
            )
            after = np.linalg.norm(current[entry.second])
            retained = float(after / before) if before > 0 else 0.0
            repairs.append(Repair(pass_number, entry.first, entry.second, entry.value, retained))
            logger.info(
                "Pass %d: re-projected %s against %s (correlation %.3f, %.0f%% retained)",
                pass_number, entry.second, entry.first, entry.value, retained * 100,
            )

    remaining = [entry for entry in measure_pairs(current, pairs, config) if entry.violating]
    if remaining:
        worst = max(remaining, key=lambda entry: abs(entry.value))
        raise OrthogonalityViolation(
            f"Categories {worst.first} and {worst.second} still correlate at "
            f"{worst.value:.3f} after {config.orthogonality_passes} repair passes",
            detail={"pair": [worst.first, worst.second], "value": worst.value,
                    "bound": config.violation_bound},
        )
    return current, repairs, config.orthogonality_passes


def _reweight_units(
    taxonomy: Taxonomy,
    original: dict[str, np.ndarray],
    repaired: dict[str, np.ndarray],
    touched: set[str],
) -> Taxonomy:
    """Reallocate units of repaired sibling groups by retained vector norm."""
    result = taxonomy
    # Top-down, so a group sees its parent's units after the parent's own group moved.
    for _, members in taxonomy.sibling_groups():
        if not any(member.id in touched for member in members):
            continue
        current = [result.get(member.id).units for member in members]
        weights = []
        for member, units in zip(members, current):
            before = float(np.linalg.norm(original[member.id]))
            after = float(np.linalg.norm(repaired[member.id]))
            weights.append(units * (after / before if before > 0 else 1.0))
        floors = [taxonomy.leaf_count(member.id) for member in members]
        shares = allocate(weights, sum(current), minimum=floors)
        result = result.with_units({member.id: share for member, share in zip(members, shares)})
    return result


def validate_orthogonality(
    taxonomy: Taxonomy,
    table: KeywordTable,
    config: Optional[PipelineConfig] = None,
    on_pass: Optional[Callable[[int], None]] = None,
) -> OrthogonalityResult:
    """
    Validate and repair sibling orthogonality.

    Args:
        taxonomy: Taxonomy from the builder
        table: Keyword table the taxonomy was built from
        config: Bounds, method and pass budget
        on_pass: Cancellation hook, called before each repair pass

    Returns:
        OrthogonalityResult

    Raises:
        OrthogonalityViolation: If repairs do not converge within the pass budget
    """
    config = config or PipelineConfig()
    vectors = category_vectors(taxonomy, table)
    pairs = sibling_pairs(taxonomy)

    repaired, repairs, passes = orthogonalize(vectors, pairs, config, on_pass)
    touched = {repair.repaired for repair in repairs}
    result_taxonomy = _reweight_units(taxonomy, vectors, repaired, touched)

    correlations = measure_pairs(repaired, pairs, config)
    for entry in correlations:
        if entry.near_miss:
            logger.info(
                "Near miss: %s / %s correlate at %.3f (bound %.2f)",
                entry.first, entry.second, entry.value, config.violation_bound,
            )
    logger.info(
        "Orthogonality: %d sibling pairs, %d repairs in %d passes",
        len(pairs), len(repairs), passes,
    )
    return OrthogonalityResult(
        taxonomy=result_taxonomy,
        correlations=correlations,
        repairs=repairs,
        passes=passes,
        profiles=build_profiles(result_taxonomy, table),
    )
