"""
Tests for the taxonomy module.

Tests ShortLex codes, unit allocation, the category tree and the
taxonomy builder.
"""

import warnings

import pytest

from trustdebt.config import PipelineConfig, SeedCategory
from trustdebt.errors import DegenerateCategoryError, DegenerateCategoryWarning
from trustdebt.extract import extract_keywords
from trustdebt.models import Category
from trustdebt.taxonomy import (
    Taxonomy,
    allocate,
    build_taxonomy,
    child_code,
    coefficient_of_variation,
    root_code,
    shortlex_sorted,
    stem,
)
from trustdebt.taxonomy import builder
from trustdebt.taxonomy.shortlex import depth_of, parent_code, positions, sibling_rank, validate_code

from tests.fixtures import EXPECTED_ROOT_KEYWORDS, INTENT_TEXTS, LEDGER_CORPUS, REALITY_TEXTS


def _two_level() -> Taxonomy:
    return Taxonomy([
        Category(id="A", name="a", keywords=frozenset({"x", "y"}), units=6),
        Category(id="B", name="b", keywords=frozenset({"z"}), units=3),
        Category(id="AA", name="aa", parent_id="A", depth=1, keywords=frozenset({"x"}), units=4),
        Category(id="AB", name="ab", parent_id="A", depth=1, keywords=frozenset({"y"}), units=2),
    ])


class TestShortLex:
    """Tests for ShortLex codes and ordering."""

    def test_length_first_order(self):
        """Test that every shorter code precedes every longer code."""
        assert shortlex_sorted(["AB", "B", "AA", "A", "BA"]) == ["A", "B", "AA", "AB", "BA"]

    def test_codes(self):
        """Test root and child code construction."""
        assert root_code(0) == "A"
        assert root_code(2) == "C"
        assert child_code("B", 1) == "BB"

    def test_code_properties(self):
        """Test parent, depth and rank derived from a code."""
        assert parent_code("BA") == "B"
        assert parent_code("B") is None
        assert depth_of("ABC") == 2
        assert sibling_rank("AC") == 2

    def test_positions(self):
        """Test that positions follow the ShortLex order."""
        assert positions(["AA", "B", "A"]) == {"A": 0, "B": 1, "AA": 2}

    def test_invalid_codes(self):
        """Test that malformed codes are rejected."""
        for code in ("", "a", "A1", "AB "):
            with pytest.raises(ValueError):
                validate_code(code)

    def test_ordinal_range(self):
        """Test that more than 26 siblings cannot be coded."""
        with pytest.raises(ValueError):
            root_code(26)


class TestUnits:
    """Tests for integer unit allocation."""

    def test_allocate_exact_total(self):
        """Test that shares always sum to the total."""
        shares = allocate([3, 2, 2], 10)
        assert sum(shares) == 10
        assert shares == [4, 3, 3]

    def test_allocate_even_split(self):
        """Test the documented even split."""
        assert allocate([1, 1, 1], 10) == [4, 3, 3]

    def test_allocate_floors(self):
        """Test that per-entry floors are granted before the proportional split."""
        assert allocate([1, 0], 5, minimum=[1, 2]) == [3, 2]

    def test_allocate_insufficient_total(self):
        """Test that a total below the floors is rejected."""
        with pytest.raises(ValueError):
            allocate([1, 1], 1, minimum=1)

    def test_coefficient_of_variation(self):
        """Test CV on uniform and skewed groups."""
        assert coefficient_of_variation([4, 4, 4]) == 0.0
        assert coefficient_of_variation([1, 3]) == pytest.approx(0.5)
        assert coefficient_of_variation([7]) == 0.0


class TestTaxonomy:
    """Tests for the Taxonomy tree."""

    def test_shortlex_positions(self):
        """Test that positions are assigned from the ShortLex order."""
        taxonomy = _two_level()
        assert [c.id for c in taxonomy] == ["A", "B", "AA", "AB"]
        assert [c.position for c in taxonomy] == [0, 1, 2, 3]

    def test_relationships(self):
        """Test children, parent, siblings and leaves."""
        taxonomy = _two_level()
        assert [c.id for c in taxonomy.children("A")] == ["AA", "AB"]
        assert taxonomy.parent("AB").id == "A"
        assert [c.id for c in taxonomy.siblings("B")] == ["A", "B"]
        assert [c.id for c in taxonomy.leaves()] == ["B", "AA", "AB"]
        assert taxonomy.leaf_count("A") == 2
        assert taxonomy.leaf_count("B") == 1

    def test_sibling_groups_top_down(self):
        """Test that the root group comes first."""
        groups = _two_level().sibling_groups()
        assert groups[0][0] is None
        assert [(parent, [c.id for c in members]) for parent, members in groups] == [
            (None, ["A", "B"]),
            ("A", ["AA", "AB"]),
        ]

    def test_valid_structure(self):
        """Test that a consistent tree has no problems."""
        assert _two_level().validate_structure() == []

    def test_with_units_rescales_children(self):
        """Test that changing a parent's units rescales its children."""
        updated = _two_level().with_units({"A": 9})
        assert updated.get("A").units == 9
        assert updated.get("AA").units + updated.get("AB").units == 9
        assert updated.get("AA").units > updated.get("AB").units
        assert updated.validate_structure() == []

    def test_with_units_is_immutable(self):
        """Test that with_units returns a new taxonomy."""
        taxonomy = _two_level()
        taxonomy.with_units({"B": 5})
        assert taxonomy.get("B").units == 3

    def test_missing_parent(self):
        """Test that a child without its parent is rejected."""
        with pytest.raises(ValueError):
            Taxonomy([Category(id="AA", name="orphan", parent_id="A", depth=1)])

    def test_duplicate_codes(self):
        """Test that duplicate codes are rejected."""
        with pytest.raises(ValueError):
            Taxonomy([Category(id="A", name="a"), Category(id="A", name="b")])

    def test_dict_round_trip(self):
        """Test that to_dict/from_dict preserve the tree."""
        taxonomy = _two_level()
        assert Taxonomy.from_dict(taxonomy.to_dict()) == taxonomy


class TestStem:
    """Tests for the suffix stemmer."""

    def test_shared_stems(self):
        """Test that inflections share a stem."""
        assert stem("calculation") == stem("calculations")
        assert stem("payment") == stem("payments")

    def test_short_words_unchanged(self):
        """Test that stripping never leaves fewer than three characters."""
        assert stem("debt") == "debt"
        assert stem("runs") == "run"
        assert stem("bed") == "bed"

    def test_ies_to_y(self):
        """Test that 'ies' endings become 'y'."""
        assert stem("categories") == "category"


class TestBuildTaxonomy:
    """Tests for the taxonomy builder."""

    def test_minimal_corpus_roots(self):
        """Test the five roots of the minimal corpus."""
        table = extract_keywords(INTENT_TEXTS, REALITY_TEXTS)
        build = build_taxonomy(table)
        assert [c.id for c in build.taxonomy] == ["A", "B", "C", "D", "E"]
        assert {c.id: set(c.keywords) for c in build.taxonomy} == EXPECTED_ROOT_KEYWORDS
        assert [c.units for c in build.taxonomy] == [2, 2, 1, 1, 1]
        assert build.dropped == []

    def test_table_assigned(self):
        """Test that every token is assigned to its leaf category."""
        table = extract_keywords(INTENT_TEXTS, REALITY_TEXTS)
        build = build_taxonomy(table)
        assert build.table["function"].category_id == "B"
        assert all(record.category_id is not None for record in build.table)

    def test_idempotent(self):
        """Test that building twice from the same table gives the same taxonomy."""
        table = extract_keywords(LEDGER_CORPUS.intent, LEDGER_CORPUS.reality)
        first = build_taxonomy(table)
        second = build_taxonomy(table)
        assert first.taxonomy == second.taxonomy
        assert first.table == second.table

    def test_units_and_structure(self):
        """Test that roots sum to the keyword mass and the tree is consistent."""
        table = extract_keywords(LEDGER_CORPUS.intent, LEDGER_CORPUS.reality)
        build = build_taxonomy(table)
        assert build.taxonomy.total_units == table.total_mass
        assert build.taxonomy.validate_structure() == []
        assert len(build.taxonomy.roots()) == PipelineConfig().root_count

    def test_children_respect_limits(self):
        """Test that fan-out and depth stay within the configured limits."""
        config = PipelineConfig(root_count=2, max_children=3, max_depth=2)
        table = extract_keywords(LEDGER_CORPUS.intent, LEDGER_CORPUS.reality)
        taxonomy = build_taxonomy(table, config).taxonomy
        assert len(taxonomy.roots()) == 2
        for category in taxonomy:
            assert len(taxonomy.children(category.id)) <= 3
            assert category.depth < 2

    def test_keywords_partition(self):
        """Test that leaf keyword sets partition the tokens."""
        table = extract_keywords(LEDGER_CORPUS.intent, LEDGER_CORPUS.reality)
        taxonomy = build_taxonomy(table).taxonomy
        leaves = taxonomy.leaves()
        seen = [token for leaf in leaves for token in leaf.keywords]
        assert sorted(seen) == table.tokens()

    def test_seed_category_pinned(self):
        """Test that a seed category becomes root A with its keywords."""
        config = PipelineConfig(seed_categories=(SeedCategory("Trust", ("trust",)),))
        table = extract_keywords(INTENT_TEXTS, REALITY_TEXTS)
        taxonomy = build_taxonomy(table, config).taxonomy
        assert taxonomy.get("A").name == "Trust"
        assert taxonomy.get("A").keywords == frozenset({"trust"})

    def test_degenerate_seed_is_dropped(self):
        """Test that a seed matching no token warns and is re-clustered away."""
        config = PipelineConfig(seed_categories=(SeedCategory("Billing", ("invoice",)),))
        table = extract_keywords(INTENT_TEXTS, REALITY_TEXTS)
        with pytest.warns(DegenerateCategoryWarning):
            build = build_taxonomy(table, config)
        assert build.dropped == ["Billing"]
        assert all(category.units > 0 for category in build.taxonomy)

    def test_degenerate_twice_raises(self, monkeypatch):
        """Test that a category still empty after re-clustering fails the build."""

        def always_empty(groups, count, seeds=()):
            return [builder.Cluster(groups=list(groups)), builder.Cluster(name="hollow")]

        monkeypatch.setattr(builder, "cluster_groups", always_empty)
        table = extract_keywords(INTENT_TEXTS, REALITY_TEXTS)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DegenerateCategoryWarning)
            with pytest.raises(DegenerateCategoryError) as info:
                build_taxonomy(table)
        assert info.value.detail["categories"] == ["hollow"]

    def test_empty_table(self):
        """Test that an empty table cannot be clustered."""
        from trustdebt.extract import KeywordTable

        with pytest.raises(ValueError):
            build_taxonomy(KeywordTable())
