"""
Tests for the validators.

Tests sibling orthogonality measurement and repair, and sibling unit
balance.
"""

import numpy as np
import pytest

from trustdebt.config import PipelineConfig
from trustdebt.errors import BalanceViolation, OrthogonalityViolation
from trustdebt.extract import extract_keywords
from trustdebt.models import Category
from trustdebt.taxonomy import Taxonomy, build_taxonomy, coefficient_of_variation
from trustdebt.validate import (
    measure_pairs,
    orthogonalize,
    rebalance_group,
    validate_balance,
    validate_orthogonality,
)
from trustdebt.validate.orthogonality import category_vectors, repair_vector, sibling_pairs
from trustdebt.vectors import cosine_similarity, pearson_correlation

from tests.fixtures import INTENT_TEXTS, LEDGER_CORPUS, REALITY_TEXTS


# Two roots with two children each: every sibling group is a single pair.
PAIRED = PipelineConfig(root_count=2, max_children=2, max_depth=2)


def _minimal_build():
    return build_taxonomy(extract_keywords(INTENT_TEXTS, REALITY_TEXTS))


class TestVectors:
    """Tests for the similarity helpers."""

    def test_zero_vector_correlates_zero(self):
        """Test that a zero vector has similarity 0, not NaN."""
        assert cosine_similarity(np.zeros(3), np.array([1.0, 2.0, 3.0])) == 0.0
        assert pearson_correlation(np.ones(3), np.array([1.0, 2.0, 3.0])) == 0.0

    def test_cosine(self):
        """Test cosine on orthogonal and parallel vectors."""
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == 0.0
        assert cosine_similarity(np.array([1.0, 1.0]), np.array([2.0, 2.0])) == pytest.approx(1.0)


class TestMeasurePairs:
    """Tests for pairwise correlation checks."""

    def test_correlated_pair_flagged(self):
        """Test that a pair at 0.5 violates the default bound."""
        vectors = {"A": np.array([1.0, 0.0]), "B": np.array([0.5, np.sqrt(0.75)])}
        [entry] = measure_pairs(vectors, [("A", "B")], PipelineConfig())
        assert entry.value == pytest.approx(0.5)
        assert entry.violating

    def test_independent_pair_passes(self):
        """Test that a pair at 0.05 is neither violating nor a near miss."""
        vectors = {"A": np.array([1.0, 0.0]), "B": np.array([0.05, np.sqrt(1 - 0.0025)])}
        [entry] = measure_pairs(vectors, [("A", "B")], PipelineConfig())
        assert not entry.violating
        assert not entry.near_miss

    def test_near_miss(self):
        """Test that a value between threshold and threshold + tolerance is a near miss."""
        vectors = {"A": np.array([1.0, 0.0]), "B": np.array([0.11, np.sqrt(1 - 0.0121)])}
        [entry] = measure_pairs(vectors, [("A", "B")], PipelineConfig())
        assert entry.near_miss
        assert not entry.violating

    def test_order_preserved(self):
        """Test that results come back in pair order regardless of the pool."""
        vectors = {code: np.array([i + 1.0, 1.0]) for i, code in enumerate("ABCD")}
        pairs = [("A", "B"), ("C", "D"), ("A", "D")]
        results = measure_pairs(vectors, pairs, PipelineConfig(), workers=3)
        assert [(r.first, r.second) for r in results] == pairs


class TestRepair:
    """Tests for re-projection."""

    def test_repair_zeroes_cosine(self):
        """Test that the repaired vector is orthogonal to the basis."""
        basis = np.array([1.0, 0.0, 1.0])
        repaired = repair_vector(basis, np.array([1.0, 1.0, 0.0]))
        assert cosine_similarity(basis, repaired) == pytest.approx(0.0, abs=1e-12)

    def test_repair_zeroes_pearson(self):
        """Test that Pearson repair zeroes the Pearson correlation."""
        basis = np.array([1.0, 2.0, 4.0, 0.0])
        repaired = repair_vector(basis, np.array([2.0, 3.0, 3.0, 1.0]), method="pearson")
        assert pearson_correlation(basis, repaired) == pytest.approx(0.0, abs=1e-12)

    def test_parallel_vector_absorbed(self):
        """Test that a vector parallel to the basis becomes exactly zero."""
        repaired = repair_vector(np.array([1.0, 2.0]), np.array([2.0, 4.0]))
        assert not repaired.any()

    def test_orthogonalize_converges(self):
        """Test that repairs converge within the default pass budget."""
        vectors = {
            "A": np.array([1.0, 0.0]),
            "B": np.array([1.0, 1.0]),
            "C": np.array([0.05, 1.0]),
        }
        pairs = [("A", "B"), ("A", "C"), ("B", "C")]
        repaired, repairs, passes = orthogonalize(vectors, pairs, PipelineConfig())
        assert passes == 2
        assert repairs
        for first, second in pairs:
            assert abs(cosine_similarity(repaired[first], repaired[second])) <= 0.12

    def test_orthogonalize_exhausts_budget(self):
        """Test that a pair still correlated after the last pass raises."""
        vectors = {
            "A": np.array([1.0, 0.0]),
            "B": np.array([1.0, 1.0]),
            "C": np.array([0.05, 1.0]),
        }
        pairs = [("A", "B"), ("A", "C"), ("B", "C")]
        config = PipelineConfig(orthogonality_passes=1)
        with pytest.raises(OrthogonalityViolation) as info:
            orthogonalize(vectors, pairs, config)
        error = info.value
        assert error.reason_code == "orthogonality_violation"
        assert error.detail["pair"] == ["A", "C"]
        assert error.detail["value"] == pytest.approx(1.0)
        assert error.detail["bound"] == pytest.approx(0.12)

    def test_input_vectors_untouched(self):
        """Test that orthogonalize works on copies."""
        vectors = {"A": np.array([1.0, 0.0]), "B": np.array([1.0, 1.0])}
        orthogonalize(vectors, [("A", "B")], PipelineConfig())
        assert vectors["B"].tolist() == [1.0, 1.0]


class TestValidateOrthogonality:
    """Tests for the orthogonality stage over a taxonomy."""

    def test_sibling_pairs(self):
        """Test that pairs are enumerated within sibling groups only."""
        taxonomy = Taxonomy([
            Category(id="A", name="a", units=2),
            Category(id="B", name="b", units=2),
            Category(id="AA", name="aa", parent_id="A", depth=1, units=1),
            Category(id="AB", name="ab", parent_id="A", depth=1, units=1),
        ])
        assert sibling_pairs(taxonomy) == [("A", "B"), ("AA", "AB")]

    def test_minimal_corpus(self):
        """Test that the minimal corpus is repaired in one pass."""
        build = _minimal_build()
        result = validate_orthogonality(build.taxonomy, build.table)
        assert result.passes == 1
        assert not any(entry.violating for entry in result.correlations)
        assert result.taxonomy.validate_structure() == []
        assert result.taxonomy.total_units == build.taxonomy.total_units
        assert set(result.profiles) == {"A", "B", "C", "D", "E"}

    def test_duplicate_contexts_detected(self):
        """Test that categories always discussed together have parallel vectors."""
        build = _minimal_build()
        vectors = category_vectors(build.taxonomy, build.table)
        # "measurement" and "trust" only ever appear in the same source.
        assert cosine_similarity(vectors["D"], vectors["E"]) == pytest.approx(1.0)

    def test_units_keep_leaf_floor(self):
        """Test that reweighting never leaves a category without units."""
        table = extract_keywords(LEDGER_CORPUS.intent, LEDGER_CORPUS.reality)
        build = build_taxonomy(table, PAIRED)
        result = validate_orthogonality(build.taxonomy, build.table, PAIRED)
        assert result.passes <= 1
        for category in result.taxonomy:
            assert category.units >= result.taxonomy.leaf_count(category.id)

    def test_cancel_hook_called(self):
        """Test that on_pass is invoked before each pass."""
        build = _minimal_build()
        seen = []
        validate_orthogonality(build.taxonomy, build.table, on_pass=seen.append)
        assert seen == [1, 2]


class TestRebalanceGroup:
    """Tests for rebalancing a single sibling group."""

    def test_skewed_group(self):
        """Test that [100, 1] is pulled to [63, 38] in two iterations."""
        units, iterations, bound = rebalance_group([100, 1], PipelineConfig())
        assert units == [63, 38]
        assert iterations == 2
        assert coefficient_of_variation(units) <= bound

    def test_total_preserved(self):
        """Test that rebalancing never changes the group total."""
        units, _, _ = rebalance_group([40, 5, 3, 2], PipelineConfig())
        assert sum(units) == 50

    def test_rank_preserved(self):
        """Test that the largest category stays the largest."""
        units, _, _ = rebalance_group([3, 90, 7], PipelineConfig())
        assert units.index(max(units)) == 1

    def test_balanced_group_untouched(self):
        """Test that a group within the bound needs no iterations."""
        assert rebalance_group([10, 11, 9], PipelineConfig()) == ([10, 11, 9], 0, 0.3)

    def test_iteration_cap(self):
        """Test that a group not in bound after the cap raises BalanceViolation."""
        config = PipelineConfig(balance_iterations=1)
        with pytest.raises(BalanceViolation) as info:
            rebalance_group([100, 1], config)
        assert info.value.reason_code == "balance_violation"

    def test_granularity_floor(self):
        """Test that five categories over seven units accept the most even split."""
        units, iterations, bound = rebalance_group([2, 2, 1, 1, 1], PipelineConfig())
        assert iterations == 0
        assert bound == pytest.approx(coefficient_of_variation([2, 2, 1, 1, 1]))

    def test_floors_cannot_be_covered(self):
        """Test that a total below the floors raises BalanceViolation."""
        with pytest.raises(BalanceViolation):
            rebalance_group([1, 1], PipelineConfig(), floors=[2, 2])


class TestValidateBalance:
    """Tests for the balance stage over a taxonomy."""

    def test_rebalances_children_of_rebalanced_parent(self):
        """Test that child groups follow their parent's new units."""
        taxonomy = Taxonomy([
            Category(id="A", name="a", units=100),
            Category(id="B", name="b", units=1),
            Category(id="AA", name="aa", parent_id="A", depth=1, units=50),
            Category(id="AB", name="ab", parent_id="A", depth=1, units=50),
        ])
        result = validate_balance(taxonomy)
        assert result.taxonomy.validate_structure() == []
        assert result.taxonomy.total_units == 101
        assert result.taxonomy.get("A").units == 63
        assert result.category_count == 4
        assert [group.parent_id for group in result.groups] == [None, "A"]
        assert [group.parent_id for group in result.rebalanced] == [None]

    def test_failure_names_group(self):
        """Test that a violation reports the offending group."""
        taxonomy = Taxonomy([
            Category(id="A", name="a", units=100),
            Category(id="B", name="b", units=1),
        ])
        with pytest.raises(BalanceViolation) as info:
            validate_balance(taxonomy, PipelineConfig(balance_iterations=1))
        assert info.value.detail["parent_id"] is None
        assert info.value.detail["members"] == ["A", "B"]

    def test_ledger_corpus(self):
        """Test that a built and repaired taxonomy balances cleanly."""
        table = extract_keywords(LEDGER_CORPUS.intent, LEDGER_CORPUS.reality)
        build = build_taxonomy(table, PAIRED)
        repaired = validate_orthogonality(build.taxonomy, build.table, PAIRED)
        result = validate_balance(repaired.taxonomy, PAIRED)
        for group in result.groups:
            assert group.cv_after <= group.bound + 1e-9
