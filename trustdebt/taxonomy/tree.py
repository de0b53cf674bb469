"""
Category Tree for Trust Debt

This module holds the taxonomy as a NetworkX directed tree where nodes are
ShortLex codes and edges point from parent to child.

Design Decisions:
    - Uses NetworkX DiGraph for the parent/child hierarchy
    - Stores Category objects as node attributes
    - Positions are always recomputed from the ShortLex order on construction
    - Taxonomies are values: every update returns a new Taxonomy

Tree Properties:
    - Acyclic, every non-root node has exactly one parent
    - A parent's keywords are the union of its subtree's keywords
    - Once finalized, a parent's units equal the sum of its children's units
"""

from typing import Any, Iterable, Iterator, Optional

import networkx as nx

from trustdebt.models import Category
from trustdebt.taxonomy.shortlex import shortlex_key, shortlex_sorted
from trustdebt.taxonomy.units import allocate, preserve_rank


class Taxonomy:
    """
    An ordered category tree.

    Wraps a NetworkX DiGraph to provide:
    - Lookup of categories by ShortLex code
    - Iteration in the canonical ShortLex order
    - Sibling groups for the orthogonality and balance validators
    - Immutable unit updates that keep the subtree sums consistent

    Usage:
        taxonomy = Taxonomy([Category(id="A", name="debt"), ...])
        for category in taxonomy:
            print(category.position, category.id)
        rebalanced = taxonomy.with_units({"A": 10, "B": 12})
    """

    def __init__(self, categories: Iterable[Category] = ()) -> None:
        """
        Build the tree; positions are reassigned from the ShortLex order.

        Raises:
            ValueError: On duplicate codes or a parent missing from the set
        """
        categories = list(categories)
        codes = [category.id for category in categories]
        if len(set(codes)) != len(codes):
            raise ValueError("Duplicate category codes in taxonomy")

        self._graph: nx.DiGraph = nx.DiGraph()
        ordered = sorted(categories, key=lambda c: shortlex_key(c.id))
        for position, category in enumerate(ordered):
            self._graph.add_node(category.id, category=category.with_position(position))

        for category in ordered:
            if category.parent_id is None:
                continue
            if category.parent_id not in self._graph:
                raise ValueError(f"Category {category.id} references missing parent {category.parent_id}")
            self._graph.add_edge(category.parent_id, category.id)

    @property
    def graph(self) -> nx.DiGraph:
        """Access the underlying NetworkX graph."""
        return self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._graph

    def __iter__(self) -> Iterator[Category]:
        return iter(self.categories())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Taxonomy):
            return NotImplemented
        return self.categories() == other.categories()

    def __repr__(self) -> str:
        return f"Taxonomy(categories={len(self)}, roots={len(self.roots())})"

    def get(self, category_id: str) -> Category:
        """Retrieve a category by code; raises KeyError if absent."""
        if category_id not in self._graph:
            raise KeyError(category_id)
        return self._graph.nodes[category_id]["category"]

    def ids(self) -> list[str]:
        """All codes in ShortLex order."""
        return shortlex_sorted(self._graph.nodes)

    def categories(self) -> list[Category]:
        """All categories in ShortLex order."""
        return [self.get(code) for code in self.ids()]

    def roots(self) -> list[Category]:
        return [category for category in self.categories() if category.is_root]

    def children(self, category_id: str) -> list[Category]:
        """Direct children in ShortLex order."""
        return [self.get(code) for code in shortlex_sorted(self._graph.successors(category_id))]

    def parent(self, category_id: str) -> Optional[Category]:
        parent_id = self.get(category_id).parent_id
        return None if parent_id is None else self.get(parent_id)

    def descendants(self, category_id: str) -> list[Category]:
        return [self.get(code) for code in shortlex_sorted(nx.descendants(self._graph, category_id))]

    def leaves(self) -> list[Category]:
        return [c for c in self.categories() if self._graph.out_degree(c.id) == 0]

    def leaf_count(self, category_id: str) -> int:
        """Number of leaves in the subtree (1 for a leaf), the fewest units it can hold."""
        below = nx.descendants(self._graph, category_id)
        return sum(1 for code in below if self._graph.out_degree(code) == 0) or 1

    def siblings(self, category_id: str) -> list[Category]:
        """The category's sibling group, including itself."""
        parent_id = self.get(category_id).parent_id
        if parent_id is None:
            return self.roots()
        return self.children(parent_id)

    def sibling_groups(self) -> list[tuple[Optional[str], list[Category]]]:
        """
        All sibling groups, top-down.

        Returns:
            (parent code or None for the roots, members in ShortLex order),
            roots first, then child groups in their parent's ShortLex order
        """
        groups: list[tuple[Optional[str], list[Category]]] = [(None, self.roots())]
        for category in self.categories():
            children = self.children(category.id)
            if children:
                groups.append((category.id, children))
        return groups

    def with_units(self, units: dict[str, int]) -> "Taxonomy":
        """
        Return a new taxonomy with the given units set.

        Descendants of every changed category are rescaled proportionally so
        that each parent stays equal to the sum of its children, keeping at
        least one unit per leaf and the children's rank order. Children whose
        whole sibling group is given explicitly are left as given.

        Raises:
            ValueError: If a category ends up with fewer units than leaves below it
        """
        current = {category.id: category.units for category in self.categories()}
        changed = {code for code, value in units.items() if current.get(code) != value}
        current.update(units)

        for category in self.categories():
            children = self.children(category.id)
            if not children:
                continue
            if category.id not in changed:
                continue
            if all(child.id in units for child in children):
                continue
            previous = [self.get(child.id).units for child in children]
            floors = [self.leaf_count(child.id) for child in children]
            shares = allocate(previous, current[category.id], minimum=floors)
            ranked = preserve_rank(previous, shares)
            if all(share >= floor for share, floor in zip(ranked, floors)):
                shares = ranked
            for child, share in zip(children, shares):
                if current[child.id] != share:
                    current[child.id] = share
                    changed.add(child.id)

        return Taxonomy(self.get(code).with_units(current[code]) for code in self.ids())

    def validate_structure(self) -> list[str]:
        """
        Check the finalized-taxonomy invariants.

        Returns:
            Human-readable problems; empty if the taxonomy is well formed
        """
        problems = []
        for category in self.categories():
            if category.units <= 0:
                problems.append(f"{category.id}: units must be positive (got {category.units})")
            parent = self.parent(category.id)
            if parent is not None and category.depth != parent.depth + 1:
                problems.append(f"{category.id}: depth {category.depth} != parent depth + 1")
            children = self.children(category.id)
            if children:
                child_sum = sum(child.units for child in children)
                if child_sum != category.units:
                    problems.append(
                        f"{category.id}: children units sum to {child_sum}, expected {category.units}"
                    )
                missing = category.keywords ^ frozenset().union(*(c.keywords for c in children))
                if missing:
                    problems.append(f"{category.id}: keywords differ from the union of its children")
        return problems

    @property
    def total_units(self) -> int:
        """Sum of the roots' units."""
        return sum(category.units for category in self.roots())

    def to_dict(self) -> dict[str, Any]:
        return {"categories": [category.to_dict() for category in self.categories()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Taxonomy":
        return cls(Category.from_dict(entry) for entry in data["categories"])
