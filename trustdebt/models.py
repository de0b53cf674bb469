"""
Core Data Models for Trust Debt

This module defines the canonical records passed between pipeline stages:
- CorpusSource / Corpus: Text supplied by the corpus collaborator
- KeywordRecord: Per-token occurrence counts in the Intent and Reality corpora
- Category: One node of the ShortLex-ordered taxonomy
- MatrixCell: One (row, column) entry of the drift matrix
- Grade: Ordered grade bands of the calibrated score

These models are designed to be:
- Immutable (frozen dataclasses, updates return new instances)
- Serializable to the artifact schema via to_dict/from_dict
- Free of behavior beyond their own invariants
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


INTENT = "intent"
REALITY = "reality"
CORPORA = (INTENT, REALITY)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CorpusSource:
    """
    One text blob supplied by the corpus collaborator.

    Attributes:
        identifier: Stable identifier across runs (file path, commit hash, ...)
        text: Raw text content
    """

    identifier: str
    text: str

    @classmethod
    def coerce(cls, source: "CorpusSource | tuple[str, str]") -> "CorpusSource":
        """Accept either a CorpusSource or an (identifier, text) pair."""
        if isinstance(source, CorpusSource):
            return source
        identifier, text = source
        return cls(identifier=str(identifier), text=text)


@dataclass
class Corpus:
    """
    The two ordered source lists consumed by the keyword extractor.

    Attributes:
        intent: Documentation sources
        reality: Source code / commit message sources
        errors: (identifier, message) pairs for sources that failed to load
    """

    intent: list[CorpusSource] = field(default_factory=list)
    reality: list[CorpusSource] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def source_count(self) -> int:
        """Total number of sources in both corpora."""
        return len(self.intent) + len(self.reality)


@dataclass(frozen=True)
class KeywordRecord:
    """
    Occurrence counts of one normalized token.

    Attributes:
        token: Case-folded token
        intent_count: Occurrences in the Intent corpus
        reality_count: Occurrences in the Reality corpus
        category_id: Owning category once the taxonomy is built, None while pending
    """

    token: str
    intent_count: int = 0
    reality_count: int = 0
    category_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        if self.intent_count < 0 or self.reality_count < 0:
            raise ValueError(f"Negative count for token {self.token!r}")

    @property
    def total_count(self) -> int:
        """Combined occurrences across both corpora."""
        return self.intent_count + self.reality_count

    def with_category(self, category_id: Optional[str]) -> "KeywordRecord":
        """Return a new record assigned to the given category."""
        return replace(self, category_id=category_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "intent_count": self.intent_count,
            "reality_count": self.reality_count,
            "category_id": self.category_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeywordRecord":
        return cls(
            token=data["token"],
            intent_count=data["intent_count"],
            reality_count=data["reality_count"],
            category_id=data.get("category_id"),
        )


@dataclass(frozen=True)
class Category:
    """
    A single node of the category taxonomy.

    Attributes:
        id: ShortLex code; one uppercase letter per level ("A", "AB", ...)
        name: Human-readable label (not used in computation)
        description: Human-readable summary (not used in computation)
        parent_id: Code of the parent, None for roots
        depth: 0 for roots, parent depth + 1 otherwise
        keywords: Tokens owned by this category's subtree
        units: Allocated share of the measured corpus
        position: Rank in the ShortLex total order

    Invariants:
        - depth == len(id) - 1
        - parent_id is None iff depth == 0
        - units >= 0
    """

    id: str
    name: str
    description: str = ""
    parent_id: Optional[str] = None
    depth: int = 0
    keywords: frozenset[str] = frozenset()
    units: int = 0
    position: int = 0

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        if self.units < 0:
            raise ValueError(f"Category {self.id} has negative units ({self.units})")
        if self.depth != len(self.id) - 1:
            raise ValueError(
                f"Category {self.id} depth ({self.depth}) does not match its code length"
            )
        if (self.parent_id is None) != (self.depth == 0):
            raise ValueError(f"Category {self.id} parent does not match its depth")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def with_units(self, units: int) -> "Category":
        """Return a new Category with updated units (immutable update)."""
        return replace(self, units=units)

    def with_position(self, position: int) -> "Category":
        """Return a new Category with an updated ShortLex position."""
        return replace(self, position=position)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "depth": self.depth,
            "keywords": sorted(self.keywords),
            "units": self.units,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            parent_id=data.get("parent_id"),
            depth=data["depth"],
            keywords=frozenset(data.get("keywords", ())),
            units=data["units"],
            position=data["position"],
        )


@dataclass(frozen=True)
class MatrixCell:
    """
    One entry of the drift matrix.

    Attributes:
        row_id: Category code of the row
        col_id: Category code of the column
        intent_value: Documented interaction strength (>= 0)
        reality_value: Delivered interaction strength (>= 0)
        contribution: Drift contributed by this cell (>= 0)
    """

    row_id: str
    col_id: str
    intent_value: float
    reality_value: float
    contribution: float

    def __post_init__(self) -> None:
        """Validate invariants after initialization."""
        if self.intent_value < 0 or self.reality_value < 0 or self.contribution < 0:
            raise ValueError(f"Negative value in cell ({self.row_id}, {self.col_id})")

    @property
    def is_diagonal(self) -> bool:
        return self.row_id == self.col_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_id": self.row_id,
            "col_id": self.col_id,
            "intent_value": self.intent_value,
            "reality_value": self.reality_value,
            "contribution": self.contribution,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatrixCell":
        return cls(
            row_id=data["row_id"],
            col_id=data["col_id"],
            intent_value=data["intent_value"],
            reality_value=data["reality_value"],
            contribution=data["contribution"],
        )


class Grade(Enum):
    """
    Grade bands over the calibrated score, best first.

    Bands are fixed and non-overlapping; each band's upper bound is inclusive,
    so a score sitting exactly on a boundary gets the lower (stricter) band.
    """

    A = "A"
    B = "B"
    C = "C"
    D = "D"
