"""
Category profiles: the per-category view of the keyword table.

The orthogonality stage is the last one to see the keyword table; it hands
the matrix builder one profile per category instead. A profile holds how
often the category's keywords occur in each source, and per keyword, so the
matrix can measure coupling and self-consistency without the table.
"""

from dataclasses import dataclass, field
from typing import Any

from trustdebt.extract import KeywordTable, split_source_key
from trustdebt.models import INTENT, REALITY
from trustdebt.taxonomy import Taxonomy


@dataclass(frozen=True)
class CategoryProfile:
    """
    Occurrence profile of one category's keywords.

    Attributes:
        category_id: ShortLex code of the category
        intent_sources: Intent source identifier -> keyword occurrences in it
        reality_sources: Reality source identifier -> keyword occurrences in it
        keyword_counts: Token -> (intent_count, reality_count)
    """

    category_id: str
    intent_sources: dict[str, int] = field(default_factory=dict)
    reality_sources: dict[str, int] = field(default_factory=dict)
    keyword_counts: dict[str, tuple[int, int]] = field(default_factory=dict)

    @property
    def intent_mass(self) -> int:
        return sum(self.intent_sources.values())

    @property
    def reality_mass(self) -> int:
        return sum(self.reality_sources.values())

    def sources(self, corpus: str) -> dict[str, int]:
        """Per-source occurrences in one corpus."""
        if corpus == INTENT:
            return self.intent_sources
        if corpus == REALITY:
            return self.reality_sources
        raise ValueError(f"Unknown corpus: {corpus}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "category_id": self.category_id,
            "intent_sources": dict(sorted(self.intent_sources.items())),
            "reality_sources": dict(sorted(self.reality_sources.items())),
            "keyword_counts": {
                token: list(counts) for token, counts in sorted(self.keyword_counts.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoryProfile":
        return cls(
            category_id=data["category_id"],
            intent_sources=dict(data["intent_sources"]),
            reality_sources=dict(data["reality_sources"]),
            keyword_counts={
                token: (int(counts[0]), int(counts[1]))
                for token, counts in data["keyword_counts"].items()
            },
        )


def build_profiles(taxonomy: Taxonomy, table: KeywordTable) -> dict[str, CategoryProfile]:
    """
    Build the profile of every category of the taxonomy.

    Args:
        taxonomy: Categories whose keyword sets define the profiles
        table: Keyword table with per-source occurrences

    Returns:
        Category code -> profile, in ShortLex order
    """
    per_source = {key: table.source_counts(key) for key in table.source_keys()}
    profiles = {}
    for category in taxonomy:
        intent_sources: dict[str, int] = {}
        reality_sources: dict[str, int] = {}
        for key, counts in per_source.items():
            mentions = sum(counts.get(token, 0) for token in category.keywords)
            if mentions == 0:
                continue
            corpus, identifier = split_source_key(key)
            target = intent_sources if corpus == INTENT else reality_sources
            target[identifier] = mentions
        keyword_counts = {
            token: (table[token].intent_count, table[token].reality_count)
            for token in sorted(category.keywords)
            if token in table
        }
        profiles[category.id] = CategoryProfile(
            category_id=category.id,
            intent_sources=intent_sources,
            reality_sources=reality_sources,
            keyword_counts=keyword_counts,
        )
    return profiles
