"""
Pipeline stage functions.

Each stage is a pure function from the previous stage's payload (stage 0:
the corpus) and a StageContext to its own payload. Stages rebuild their
inputs from the payload documents, so a stage run in a fresh process from
stored artifacts computes exactly what it would have computed in-line.

Stages check their own postconditions and raise a TrustDebtError subclass
when one does not hold.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from trustdebt.config import PipelineConfig
from trustdebt.errors import DegenerateCategoryError, DimensionMismatchError, OrthogonalityViolation
from trustdebt.extract import KeywordTable, extract_keywords
from trustdebt.grading import grade_matrix
from trustdebt.matrix import CategoryProfile, DriftMatrix, build_matrix
from trustdebt.models import Corpus
from trustdebt.storage.schemas import STAGE_LABELS
from trustdebt.taxonomy import Taxonomy, build_taxonomy
from trustdebt.validate import validate_balance, validate_orthogonality


@dataclass
class StageContext:
    """
    What a stage may use besides its input payload.

    Attributes:
        config: Pipeline configuration
        checkpoint: Raises RunCancelled once the run is cancelled; stages call
                    it between sub-steps
    """

    config: PipelineConfig = field(default_factory=PipelineConfig)
    checkpoint: Callable[[], None] = lambda: None


def run_keywords(corpus: Corpus, context: StageContext) -> dict[str, Any]:
    """Stage 0: extract the keyword table from the corpus."""
    table = extract_keywords(
        corpus.intent,
        corpus.reality,
        context.config,
        cancelled=context.checkpoint,
    )
    return {
        "table": table.to_dict(),
        "intent_sources": len(corpus.intent),
        "reality_sources": len(corpus.reality),
    }


def run_taxonomy(prior: dict[str, Any], context: StageContext) -> dict[str, Any]:
    """Stage 1: cluster the keywords into the category taxonomy."""
    table = KeywordTable.from_dict(prior["table"])
    context.checkpoint()
    build = build_taxonomy(table, context.config)
    _check_structure(build.taxonomy, DegenerateCategoryError)
    return {
        "taxonomy": build.taxonomy.to_dict(),
        "table": build.table.to_dict(),
        "dropped": list(build.dropped),
    }


def run_orthogonality(prior: dict[str, Any], context: StageContext) -> dict[str, Any]:
    """Stage 2: repair correlated siblings and derive the category profiles."""
    taxonomy = Taxonomy.from_dict(prior["taxonomy"])
    table = KeywordTable.from_dict(prior["table"])
    result = validate_orthogonality(
        taxonomy, table, context.config, on_pass=lambda _: context.checkpoint(),
    )
    _check_structure(result.taxonomy, OrthogonalityViolation)
    return {
        "taxonomy": result.taxonomy.to_dict(),
        "correlations": [entry.to_dict() for entry in result.correlations],
        "repairs": [repair.to_dict() for repair in result.repairs],
        "passes": result.passes,
        "profiles": {code: profile.to_dict() for code, profile in result.profiles.items()},
    }


def run_balance(prior: dict[str, Any], context: StageContext) -> dict[str, Any]:
    """Stage 3: rebalance sibling units and fix the validated category count."""
    taxonomy = Taxonomy.from_dict(prior["taxonomy"])
    result = validate_balance(taxonomy, context.config, on_group=lambda _: context.checkpoint())
    return {
        "taxonomy": result.taxonomy.to_dict(),
        "groups": [group.to_dict() for group in result.groups],
        "category_count": result.category_count,
        "profiles": prior["profiles"],
    }


def run_matrix(prior: dict[str, Any], context: StageContext) -> dict[str, Any]:
    """Stage 4: build the drift matrix over the validated taxonomy."""
    taxonomy = Taxonomy.from_dict(prior["taxonomy"])
    profiles = {code: CategoryProfile.from_dict(entry) for code, entry in prior["profiles"].items()}
    matrix = build_matrix(
        taxonomy,
        profiles,
        expected_size=prior["category_count"],
        config=context.config,
        on_row=lambda _: context.checkpoint(),
    )
    payload = matrix.to_dict()
    payload["summary"] = matrix.summary(context.config.hotspot_count).to_dict()
    return payload


def run_grade(prior: dict[str, Any], context: StageContext) -> dict[str, Any]:
    """Stage 5: calibrate the total drift and grade it."""
    matrix = DriftMatrix.from_dict(prior)
    if matrix.size != prior["category_count"]:
        raise DimensionMismatchError(
            f"Matrix has {matrix.size} categories, validated size is {prior['category_count']}",
            detail={"expected": prior["category_count"], "actual": matrix.size},
        )
    context.checkpoint()
    return grade_matrix(matrix, context.config).to_dict()


def _check_structure(taxonomy: Taxonomy, error: type) -> None:
    problems = taxonomy.validate_structure()
    if problems:
        raise error(
            "Taxonomy breaks its invariants: " + "; ".join(problems),
            detail={"problems": problems},
        )


@dataclass(frozen=True)
class Stage:
    """A pipeline stage: index, fixed label and its function."""

    index: int
    label: str
    function: Callable[[Any, StageContext], dict[str, Any]]

    @property
    def takes_corpus(self) -> bool:
        return self.index == 0


STAGES: tuple[Stage, ...] = tuple(
    Stage(index, label, function)
    for index, (label, function) in enumerate(zip(
        STAGE_LABELS,
        (run_keywords, run_taxonomy, run_orthogonality, run_balance, run_matrix, run_grade),
    ))
)
LAST_STAGE = len(STAGES) - 1


def get_stage(index: int) -> Stage:
    """Look up a stage by index; raises ValueError for unknown indices."""
    if not 0 <= index <= LAST_STAGE:
        raise ValueError(f"No stage {index}; stages are 0..{LAST_STAGE}")
    return STAGES[index]


def stage_index(name: str) -> Optional[int]:
    """Index of a stage given its label or its index as text."""
    if name.isdigit():
        index = int(name)
        return index if 0 <= index <= LAST_STAGE else None
    return STAGE_LABELS.index(name) if name in STAGE_LABELS else None
