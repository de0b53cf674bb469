"""
Pipeline Configuration for Trust Debt

Every tunable constant of the pipeline lives on PipelineConfig. A config is
immutable and is stamped (by digest) on every artifact it produced, so any
score can be traced back to the exact settings that computed it.

Sources, lowest precedence first:
    1. Dataclass defaults
    2. A TOML file: the [tool.trustdebt] table of a pyproject.toml, or the
       top level of a trustdebt.toml
    3. TRUSTDEBT_<FIELD> environment variables (scalar fields only)
"""

import hashlib
import json
import os
import tomllib
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional


ENV_PREFIX = "TRUSTDEBT_"

# English stopwords plus Python syntax keywords. Deliberately excludes
# words like "function" or "class" that carry meaning in prose.
DEFAULT_NOISE_TOKENS: frozenset[str] = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
    "her", "was", "one", "our", "out", "has", "have", "had", "his", "how",
    "its", "may", "new", "now", "own", "see", "two", "way", "who", "did",
    "get", "got", "let", "put", "say", "she", "too", "use", "this", "that",
    "with", "from", "they", "will", "would", "there", "their", "what",
    "about", "which", "when", "were", "been", "into", "than", "then",
    "them", "these", "those", "some", "such", "only", "also", "just",
    "each", "other", "more", "most", "very", "should", "could", "where",
    "while", "here", "your", "yours", "over", "under", "does", "done",
    "def", "self", "cls", "none", "true", "false", "elif", "else", "return",
    "import", "pass", "lambda", "yield", "async", "await", "assert", "del",
    "global", "nonlocal", "raise", "try", "except", "finally", "with",
    "var", "const", "null", "undefined", "args", "kwargs", "str", "int",
    "bool", "dict", "list", "tuple", "float", "optional",
})


@dataclass(frozen=True)
class SeedCategory:
    """A named root category pinned by configuration, with its seed keywords."""

    name: str
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class PipelineConfig:
    """
    Central configuration for every pipeline stage.

    Attributes:
        min_token_length: Tokens shorter than this are syntax noise
        noise_tokens: Denylist of tokens dropped by the extractor
        root_count: Number of top-level clusters
        max_children: Upper bound on children per category
        max_depth: Number of taxonomy levels (2 = roots plus one child level)
        seed_categories: Optional pinned root categories
        correlation_method: "cosine" or "pearson"
        orthogonality_threshold: Sibling correlation bound
        orthogonality_tolerance: Slack above the bound before repair triggers
        orthogonality_passes: Repair pass budget
        balance_cv_bound: Coefficient of variation bound for sibling units
        balance_step: Fraction of each category's distance to the mean removed per iteration
        balance_iterations: Rebalancing iteration cap
        value_scale: Scale of matrix intent/reality values
        diagonal_scale: Scaling constant of diagonal contributions
        hotspot_count: Number of top cells reported
        sophistication_discount: Disclosed calibration credit for architectural complexity
        grade_bounds: Inclusive upper bounds of grades A, B and C
        workers: Thread pool size for intra-stage parallel work
    """

    min_token_length: int = 3
    noise_tokens: frozenset[str] = DEFAULT_NOISE_TOKENS
    root_count: int = 5
    max_children: int = 4
    max_depth: int = 2
    seed_categories: tuple[SeedCategory, ...] = ()
    correlation_method: str = "cosine"
    orthogonality_threshold: float = 0.10
    orthogonality_tolerance: float = 0.02
    orthogonality_passes: int = 3
    balance_cv_bound: float = 0.30
    balance_step: float = 0.5
    balance_iterations: int = 10
    value_scale: float = 10.0
    diagonal_scale: float = 100.0
    hotspot_count: int = 10
    sophistication_discount: float = 0.30
    grade_bounds: tuple[float, float, float] = (500.0, 1500.0, 3000.0)
    workers: int = 4

    def __post_init__(self) -> None:
        """Validate ranges after initialization."""
        if self.min_token_length < 1:
            raise ValueError("min_token_length must be >= 1")
        if not 1 <= self.root_count <= 26:
            raise ValueError("root_count must be between 1 and 26")
        if not 2 <= self.max_children <= 26:
            raise ValueError("max_children must be between 2 and 26")
        if self.max_depth < 1:
            raise ValueError("max_depth must be >= 1")
        if self.correlation_method not in ("cosine", "pearson"):
            raise ValueError(f"Unknown correlation method: {self.correlation_method}")
        if not 0.0 <= self.orthogonality_threshold <= 1.0:
            raise ValueError("orthogonality_threshold must be within [0, 1]")
        if self.orthogonality_tolerance < 0.0:
            raise ValueError("orthogonality_tolerance must be >= 0")
        if self.orthogonality_passes < 1 or self.balance_iterations < 1:
            raise ValueError("iteration caps must be >= 1")
        if not 0.0 < self.balance_step <= 1.0:
            raise ValueError("balance_step must be within (0, 1]")
        if self.balance_cv_bound < 0.0:
            raise ValueError("balance_cv_bound must be >= 0")
        if not 0.0 <= self.sophistication_discount < 1.0:
            raise ValueError("sophistication_discount must be within [0, 1)")
        bounds = list(self.grade_bounds)
        if len(bounds) != 3 or bounds != sorted(bounds) or len(set(bounds)) != 3 or bounds[0] < 0:
            raise ValueError("grade_bounds must be three strictly increasing non-negative values")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if len(self.seed_categories) > self.root_count:
            raise ValueError("more seed categories than root_count")

    @property
    def violation_bound(self) -> float:
        """Correlation magnitude above which a sibling pair is repaired."""
        return self.orthogonality_threshold + self.orthogonality_tolerance

    def to_dict(self) -> dict[str, Any]:
        """Canonical JSON-compatible form."""
        data = asdict(self)
        data["noise_tokens"] = sorted(self.noise_tokens)
        data["grade_bounds"] = list(self.grade_bounds)
        data["seed_categories"] = [
            {"name": seed.name, "keywords": list(seed.keywords)}
            for seed in self.seed_categories
        ]
        return data

    def digest(self) -> str:
        """SHA-256 of the canonical form, stamped on every artifact."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        """Return a new config with the given fields replaced."""
        return replace(self, **overrides)


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Coerce a raw TOML/env value to the type of the field default."""
    if name == "noise_tokens":
        return frozenset(str(token).lower() for token in value)
    if name == "grade_bounds":
        return tuple(float(bound) for bound in value)
    if name == "seed_categories":
        return tuple(
            SeedCategory(name=str(entry["name"]), keywords=tuple(str(k).lower() for k in entry["keywords"]))
            for entry in value
        )
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def _read_toml_table(path: Path) -> dict[str, Any]:
    """Read the trustdebt settings table from a TOML file."""
    with path.open("rb") as handle:
        document = tomllib.load(handle)
    if path.name == "pyproject.toml":
        return document.get("tool", {}).get("trustdebt", {})
    return document


def load_config(
    path: Optional[Path | str] = None,
    environ: Optional[dict[str, str]] = None,
) -> PipelineConfig:
    """
    Load configuration from a TOML file and the environment.

    Args:
        path: A pyproject.toml or trustdebt.toml; skipped if None or missing
        environ: Environment mapping (defaults to os.environ)

    Returns:
        The resulting PipelineConfig

    Raises:
        ValueError: On unknown keys or out-of-range values
    """
    environ = os.environ if environ is None else environ
    defaults = PipelineConfig()
    known = {f.name: getattr(defaults, f.name) for f in fields(PipelineConfig)}
    values: dict[str, Any] = {}

    if path is not None and Path(path).exists():
        table = _read_toml_table(Path(path))
        extra_noise = table.pop("extra_noise_tokens", None)
        unknown = set(table) - set(known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        for name, raw in table.items():
            values[name] = _coerce(name, raw, known[name])
        if extra_noise:
            base = values.get("noise_tokens", defaults.noise_tokens)
            values["noise_tokens"] = base | frozenset(str(t).lower() for t in extra_noise)

    for name, default in known.items():
        if name in ("noise_tokens", "seed_categories"):
            continue
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if name == "grade_bounds":
            values[name] = _coerce(name, raw.split(","), default)
        else:
            values[name] = _coerce(name, raw, default)

    return PipelineConfig(**values)
