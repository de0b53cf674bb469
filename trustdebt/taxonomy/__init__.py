"""
Taxonomy module for Trust Debt.

This module builds the ShortLex-coded category tree from the keyword table
and provides the tree and unit helpers used by the validators.
"""

from trustdebt.taxonomy.builder import TaxonomyBuild, build_taxonomy, stem
from trustdebt.taxonomy.shortlex import child_code, root_code, shortlex_key, shortlex_sorted
from trustdebt.taxonomy.tree import Taxonomy
from trustdebt.taxonomy.units import allocate, coefficient_of_variation

__all__ = [
    "Taxonomy",
    "TaxonomyBuild",
    "allocate",
    "build_taxonomy",
    "child_code",
    "coefficient_of_variation",
    "root_code",
    "shortlex_key",
    "shortlex_sorted",
    "stem",
]
