"""
Category Taxonomy Builder for Trust Debt

This module clusters the extracted keywords into a ShortLex-coded category
tree and allocates each category its unit budget.

Algorithm:
    1. Tokens sharing a stem ("calculate", "calculation") form a stem group;
       a group is the atomic unit of clustering
    2. The heaviest groups seed the root clusters (after any configured
       seed categories); every other group joins the cluster whose source
       profile it is most similar to
    3. Each root with two or more groups is subdivided the same way, down to
       the configured depth
    4. Codes follow clustering order; positions follow ShortLex order
    5. Units equal keyword mass, so roots sum to the total mass and
       children sum to their parent

Design Decisions:
    - Deterministic: groups are visited by descending mass then stem, and
      ties between clusters go to the lighter cluster, then the lower index
    - Idempotent: building twice from the same table gives the same tree
    - An empty cluster is degenerate: it is reported once, dropped, and the
      level is re-clustered; a second empty cluster fails the stage

Academic Context:
    Input: KeywordTable
    Transformation: Stemming -> greedy similarity clustering -> code assignment
    Output: Taxonomy plus the table with category assignments
    Limitation: Similarity is co-occurrence within sources, not meaning
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from trustdebt.config import PipelineConfig, SeedCategory
from trustdebt.errors import DegenerateCategoryError, DegenerateCategoryWarning
from trustdebt.extract import KeywordTable
from trustdebt.models import Category
from trustdebt.taxonomy.shortlex import child_code, root_code
from trustdebt.taxonomy.tree import Taxonomy
from trustdebt.vectors import cosine_similarity


logger = logging.getLogger(__name__)

# Longest first so that "ations" wins over "s".
SUFFIXES = sorted(
    ["ational", "ations", "ation", "ments", "ment", "ings", "ing", "ities",
     "ity", "ness", "ions", "ion", "ers", "er", "ies", "ied", "ed", "es", "ly", "s"],
    key=len,
    reverse=True,
)
MIN_STEM_LENGTH = 3
NAME_TOKENS = 2
DESCRIPTION_TOKENS = 8


def stem(token: str) -> str:
    """
    Reduce a token to a crude shared root.

    Example:
        >>> stem("calculations"), stem("measurement"), stem("debt")
        ('calcul', 'measure', 'debt')
    """
    for suffix in SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= MIN_STEM_LENGTH:
            base = token[: -len(suffix)]
            if suffix in ("ies", "ied"):
                base += "y"
            return base
    return token


@dataclass
class StemGroup:
    """
    Tokens sharing a stem, with their combined counts.

    Attributes:
        stem: Shared root
        tokens: Member tokens, sorted
        mass: Combined intent + reality count
        profile: Combined per-source counts (one entry per source key)
    """

    stem: str
    tokens: list[str]
    mass: int
    profile: np.ndarray


@dataclass
class Cluster:
    """A cluster under construction."""

    groups: list[StemGroup] = field(default_factory=list)
    name: Optional[str] = None

    @property
    def mass(self) -> int:
        return sum(group.mass for group in self.groups)

    @property
    def tokens(self) -> list[str]:
        return sorted(token for group in self.groups for token in group.tokens)

    def profile(self, width: int) -> np.ndarray:
        if not self.groups:
            return np.zeros(width)
        return np.sum([group.profile for group in self.groups], axis=0)


@dataclass
class TaxonomyBuild:
    """
    Result of building a taxonomy.

    Attributes:
        taxonomy: The ShortLex-ordered category tree with units allocated
        table: The keyword table with every record assigned to its leaf category
        dropped: Names of degenerate categories removed during re-clustering
    """

    taxonomy: Taxonomy
    table: KeywordTable
    dropped: list[str] = field(default_factory=list)


def stem_groups(table: KeywordTable) -> list[StemGroup]:
    """
    Group the table's tokens by stem.

    Returns:
        Groups sorted by descending mass, then stem
    """
    tokens = table.tokens()
    _, matrix = table.occurrence_matrix(tokens)
    column = {token: index for index, token in enumerate(tokens)}

    members: dict[str, list[str]] = {}
    for token in tokens:
        members.setdefault(stem(token), []).append(token)

    groups = []
    for root, group_tokens in members.items():
        indices = [column[token] for token in group_tokens]
        groups.append(
            StemGroup(
                stem=root,
                tokens=sorted(group_tokens),
                mass=sum(table[token].total_count for token in group_tokens),
                profile=matrix[:, indices].sum(axis=1),
            )
        )
    groups.sort(key=lambda group: (-group.mass, group.stem))
    return groups


def _matches_seed(group: StemGroup, seed: SeedCategory) -> bool:
    seed_stems = {stem(keyword) for keyword in seed.keywords}
    return group.stem in seed_stems or any(token in seed.keywords for token in group.tokens)


def cluster_groups(
    groups: list[StemGroup],
    count: int,
    seeds: tuple[SeedCategory, ...] = (),
) -> list[Cluster]:
    """
    Partition stem groups into at most count clusters.

    Args:
        groups: Groups sorted by descending mass
        count: Requested number of clusters
        seeds: Pinned clusters, placed first; only groups matching a seed's
               keywords join it in the seeding step

    Returns:
        Clusters in code order; seeded clusters may be empty
    """
    width = len(groups[0].profile) if groups else 0
    clusters = [Cluster(name=seed.name) for seed in seeds]
    pending = []
    for group in groups:
        for cluster, seed in zip(clusters, seeds):
            if _matches_seed(group, seed):
                cluster.groups.append(group)
                break
        else:
            pending.append(group)

    free_slots = max(0, min(count - len(seeds), len(pending)))
    for group in pending[:free_slots]:
        clusters.append(Cluster(groups=[group]))
    pending = pending[free_slots:]

    for group in pending:
        best_index = None
        best_key = None
        for index, cluster in enumerate(clusters):
            if not cluster.groups:
                continue
            similarity = cosine_similarity(group.profile, cluster.profile(width))
            key = (-similarity, cluster.mass, index)
            if best_key is None or key < best_key:
                best_key = key
                best_index = index
        if best_index is None:
            clusters.append(Cluster(groups=[group]))
        else:
            clusters[best_index].groups.append(group)

    return clusters


def _cluster_with_recovery(
    groups: list[StemGroup],
    count: int,
    seeds: tuple[SeedCategory, ...],
    level: str,
) -> tuple[list[Cluster], list[str]]:
    """Cluster, and re-cluster once without any empty (degenerate) clusters."""
    clusters = cluster_groups(groups, count, seeds)
    empty = [cluster for cluster in clusters if not cluster.groups]
    if not empty:
        return clusters, []

    names = [cluster.name or "<unnamed>" for cluster in empty]
    message = f"Degenerate categories at {level}: {', '.join(names)}; re-clustering without them"
    warnings.warn(message, DegenerateCategoryWarning, stacklevel=3)
    logger.warning(message)

    kept_seeds = tuple(seed for seed in seeds if seed.name not in names)
    clusters = cluster_groups(groups, count - len(empty), kept_seeds)
    still_empty = [cluster.name or "<unnamed>" for cluster in clusters if not cluster.groups]
    if still_empty:
        raise DegenerateCategoryError(
            f"Categories still empty after re-clustering at {level}: {', '.join(still_empty)}",
            detail={"level": level, "categories": still_empty},
        )
    return clusters, names


def _describe(cluster: Cluster, table: KeywordTable) -> tuple[str, str]:
    """Name and description of a cluster from its heaviest tokens."""
    ranked = sorted(cluster.tokens, key=lambda token: (-table[token].total_count, token))
    name = cluster.name or " / ".join(ranked[:NAME_TOKENS])
    description = "Keywords: " + ", ".join(ranked[:DESCRIPTION_TOKENS])
    if len(ranked) > DESCRIPTION_TOKENS:
        description += f" (+{len(ranked) - DESCRIPTION_TOKENS} more)"
    return name, description


def build_taxonomy(
    table: KeywordTable,
    config: Optional[PipelineConfig] = None,
) -> TaxonomyBuild:
    """
    Build the category taxonomy from a keyword table.

    Args:
        table: Keyword table from the extractor (or from a prior run)
        config: Root count, fan-out, depth and seed categories

    Returns:
        TaxonomyBuild with the ordered tree, the assigned table and the
        names of any degenerate categories that were dropped

    Raises:
        DegenerateCategoryError: If re-clustering leaves a category empty
        ValueError: If the table is empty
    """
    config = config or PipelineConfig()
    if len(table) == 0:
        raise ValueError("Cannot build a taxonomy from an empty keyword table")

    groups = stem_groups(table)
    roots, dropped = _cluster_with_recovery(
        groups, config.root_count, config.seed_categories, level="root",
    )

    categories: list[Category] = []
    assignment: dict[str, str] = {}
    mass_of: dict[str, int] = {}

    def emit(cluster: Cluster, code: str, parent: Optional[str], depth: int) -> None:
        name, description = _describe(cluster, table)
        categories.append(
            Category(
                id=code,
                name=name,
                description=description,
                parent_id=parent,
                depth=depth,
                keywords=frozenset(cluster.tokens),
            )
        )
        mass_of[code] = cluster.mass

        children: list[Cluster] = []
        if depth + 1 < config.max_depth and len(cluster.groups) >= 2:
            fan_out = min(config.max_children, len(cluster.groups))
            ordered = sorted(cluster.groups, key=lambda group: (-group.mass, group.stem))
            children, lost = _cluster_with_recovery(ordered, fan_out, (), level=code)
            dropped.extend(lost)

        if not children:
            for token in cluster.tokens:
                assignment[token] = code
            return
        for ordinal, child in enumerate(children):
            emit(child, child_code(code, ordinal), code, depth + 1)

    for ordinal, cluster in enumerate(roots):
        emit(cluster, root_code(ordinal), None, 0)

    # Each cluster's mass is the sum of its children's, so mass is a valid unit budget.
    taxonomy = Taxonomy(category.with_units(mass_of[category.id]) for category in categories)

    logger.info(
        "Built taxonomy: %d categories (%d roots) over %d tokens",
        len(taxonomy), len(taxonomy.roots()), len(table),
    )
    return TaxonomyBuild(taxonomy=taxonomy, table=table.assign(assignment), dropped=dropped)
