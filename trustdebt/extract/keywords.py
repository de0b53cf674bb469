"""
Keyword Extraction for Trust Debt

This module turns the Intent and Reality corpora into a weighted token
frequency table.

Key Components:
    - tokenize: Splits text into case-folded word-like tokens
    - KeywordTable: Token -> (intent_count, reality_count) table with per-source counts
    - extract_source: Partial table for a single source
    - extract_keywords: Main entry point over both corpora

Design Decisions:
    - Identifiers are split on snake_case and camelCase boundaries, so
      "calculateDebt" and "calculate_debt" both yield "calculate" and "debt"
    - Counting is pure and order-independent: tables add associatively and
      commutatively, so any partition of the sources produces the same sum
    - Per-source work runs on a thread pool; partial tables are reduced in
      source order, never through a shared mutable accumulator

Academic Context:
    Input: Two ordered lists of (identifier, text) sources
    Transformation: Regex tokenization -> noise filtering -> counting
    Output: KeywordTable
    Limitation: Bag-of-words; no semantic understanding of the tokens
"""

import logging
import re
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from functools import reduce
from typing import Any, Iterable, Iterator, Optional

import numpy as np

from trustdebt.config import PipelineConfig
from trustdebt.errors import EmptyCorpusError
from trustdebt.models import CORPORA, INTENT, REALITY, CorpusSource, KeywordRecord


logger = logging.getLogger(__name__)

# Capitalized words, lowercase runs, acronyms and digit runs. Anything else
# (operators, punctuation, underscores) separates tokens.
WORD_PATTERN = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|[0-9]+")


def source_key(corpus: str, identifier: str) -> str:
    """Key of a source in the occurrence map, e.g. "intent:README.md"."""
    if corpus not in CORPORA:
        raise ValueError(f"Unknown corpus: {corpus}")
    return f"{corpus}:{identifier}"


def split_source_key(key: str) -> tuple[str, str]:
    """Inverse of source_key."""
    corpus, _, identifier = key.partition(":")
    return corpus, identifier


def tokenize(text: str, config: Optional[PipelineConfig] = None) -> list[str]:
    """
    Split text into normalized tokens, dropping syntax noise.

    Args:
        text: Raw text (prose or code)
        config: Provides min_token_length and the noise denylist

    Returns:
        Tokens in order of appearance

    Example:
        >>> tokenize("def calculateTrustDebt(x): return 42")
        ['calculate', 'trust', 'debt']
    """
    config = config or PipelineConfig()
    tokens = []
    for match in WORD_PATTERN.finditer(text):
        token = match.group(0).lower()
        if token.isdigit():
            continue
        if len(token) < config.min_token_length:
            continue
        if token in config.noise_tokens:
            continue
        tokens.append(token)
    return tokens


class KeywordTable:
    """
    Token frequency table over the Intent and Reality corpora.

    Holds one KeywordRecord per token plus the per-source counts the later
    stages need for co-occurrence measures. Tables are values: adding two
    tables returns a new one and never mutates either operand.

    Usage:
        table = extract_source(CorpusSource("README", "..."), INTENT)
        table = table + extract_source(CorpusSource("main.py", "..."), REALITY)
        table["debt"].intent_count
    """

    def __init__(
        self,
        records: Optional[dict[str, KeywordRecord]] = None,
        occurrences: Optional[dict[str, dict[str, int]]] = None,
    ) -> None:
        self._records: dict[str, KeywordRecord] = {
            token: record for token, record in (records or {}).items() if record.total_count > 0
        }
        self._occurrences: dict[str, dict[str, int]] = {
            key: {token: count for token, count in counts.items() if count > 0}
            for key, counts in (occurrences or {}).items()
        }

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, token: object) -> bool:
        return token in self._records

    def __getitem__(self, token: str) -> KeywordRecord:
        return self._records[token]

    def __iter__(self) -> Iterator[KeywordRecord]:
        return iter(self.records())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeywordTable):
            return NotImplemented
        return self._records == other._records and self._occurrences == other._occurrences

    def __add__(self, other: "KeywordTable") -> "KeywordTable":
        """Sum two tables; category assignments survive only if both sides agree."""
        if not isinstance(other, KeywordTable):
            return NotImplemented
        records = dict(self._records)
        for token, theirs in other._records.items():
            mine = records.get(token)
            if mine is None:
                records[token] = theirs
                continue
            category = mine.category_id if mine.category_id == theirs.category_id else None
            records[token] = KeywordRecord(
                token=token,
                intent_count=mine.intent_count + theirs.intent_count,
                reality_count=mine.reality_count + theirs.reality_count,
                category_id=category,
            )
        occurrences = {key: dict(counts) for key, counts in self._occurrences.items()}
        for key, counts in other._occurrences.items():
            merged = Counter(occurrences.get(key, {}))
            merged.update(counts)
            occurrences[key] = dict(merged)
        return KeywordTable(records, occurrences)

    def __repr__(self) -> str:
        return f"KeywordTable(tokens={len(self)}, sources={len(self._occurrences)})"

    @property
    def total_mass(self) -> int:
        """Sum of all occurrences in both corpora."""
        return sum(record.total_count for record in self._records.values())

    @property
    def intent_mass(self) -> int:
        return sum(record.intent_count for record in self._records.values())

    @property
    def reality_mass(self) -> int:
        return sum(record.reality_count for record in self._records.values())

    def tokens(self) -> list[str]:
        """All tokens, sorted."""
        return sorted(self._records)

    def records(self) -> list[KeywordRecord]:
        """All records, sorted by token."""
        return [self._records[token] for token in self.tokens()]

    def source_keys(self, corpus: Optional[str] = None) -> list[str]:
        """Sorted source keys, optionally restricted to one corpus."""
        keys = sorted(self._occurrences)
        if corpus is None:
            return keys
        return [key for key in keys if split_source_key(key)[0] == corpus]

    def source_counts(self, key: str) -> dict[str, int]:
        """Token counts of one source."""
        return dict(self._occurrences.get(key, {}))

    def occurrence_matrix(
        self,
        tokens: Optional[list[str]] = None,
        corpus: Optional[str] = None,
    ) -> tuple[list[str], np.ndarray]:
        """
        Build the source x token count matrix.

        Args:
            tokens: Column order (defaults to all tokens, sorted)
            corpus: Restrict rows to one corpus

        Returns:
            (row source keys, matrix of shape (len(keys), len(tokens)))
        """
        tokens = self.tokens() if tokens is None else tokens
        column = {token: index for index, token in enumerate(tokens)}
        keys = self.source_keys(corpus)
        matrix = np.zeros((len(keys), len(tokens)), dtype=float)
        for row, key in enumerate(keys):
            for token, count in self._occurrences[key].items():
                index = column.get(token)
                if index is not None:
                    matrix[row, index] = count
        return keys, matrix

    def assign(self, assignment: dict[str, str]) -> "KeywordTable":
        """Return a new table whose records carry the given token -> category ids."""
        records = {
            token: record.with_category(assignment.get(token, record.category_id))
            for token, record in self._records.items()
        }
        return KeywordTable(records, self._occurrences)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [record.to_dict() for record in self.records()],
            "occurrences": {key: dict(sorted(self._occurrences[key].items())) for key in self.source_keys()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeywordTable":
        records = {entry["token"]: KeywordRecord.from_dict(entry) for entry in data["records"]}
        return cls(records, {key: dict(counts) for key, counts in data["occurrences"].items()})


def extract_source(
    source: CorpusSource | tuple[str, str],
    corpus: str,
    config: Optional[PipelineConfig] = None,
) -> KeywordTable:
    """
    Extract the partial keyword table of a single source.

    Args:
        source: The source to tokenize
        corpus: INTENT or REALITY
        config: Tokenizer settings

    Returns:
        A KeywordTable holding only this source's counts
    """
    source = CorpusSource.coerce(source)
    counts = Counter(tokenize(source.text, config))
    records = {
        token: KeywordRecord(
            token=token,
            intent_count=count if corpus == INTENT else 0,
            reality_count=count if corpus == REALITY else 0,
        )
        for token, count in counts.items()
    }
    return KeywordTable(records, {source_key(corpus, source.identifier): dict(counts)})


def extract_keywords(
    intent_sources: Iterable[CorpusSource | tuple[str, str]],
    reality_sources: Iterable[CorpusSource | tuple[str, str]],
    config: Optional[PipelineConfig] = None,
    workers: Optional[int] = None,
    cancelled=None,
) -> KeywordTable:
    """
    Extract the keyword table of both corpora.

    Each source is tokenized independently on a thread pool and the partial
    tables are summed in source order. The result does not depend on the
    worker count or on how the sources are partitioned.

    Args:
        intent_sources: Documentation sources
        reality_sources: Code / commit sources
        config: Tokenizer settings
        workers: Thread pool size (defaults to config.workers)
        cancelled: Optional zero-argument callable; raising from it aborts extraction

    Returns:
        The combined KeywordTable

    Raises:
        EmptyCorpusError: If both corpora yield zero tokens

    Example:
        >>> table = extract_keywords(["trust debt"], ["debt calculation"])
        >>> table["debt"].intent_count, table["debt"].reality_count
        (1, 1)
    """
    config = config or PipelineConfig()
    workers = workers or config.workers

    jobs = [(_indexed(source, i, INTENT), INTENT) for i, source in enumerate(intent_sources)]
    jobs += [(_indexed(source, i, REALITY), REALITY) for i, source in enumerate(reality_sources)]

    def run(job: tuple[CorpusSource, str]) -> KeywordTable:
        if cancelled is not None:
            cancelled()
        source, corpus = job
        return extract_source(source, corpus, config)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        partials = list(pool.map(run, jobs))

    table = reduce(lambda left, right: left + right, partials, KeywordTable())

    if len(table) == 0:
        raise EmptyCorpusError(
            "Both corpora produced zero tokens",
            detail={"intent_sources": sum(1 for _, c in jobs if c == INTENT),
                    "reality_sources": sum(1 for _, c in jobs if c == REALITY)},
        )

    logger.info(
        "Extracted %d tokens (intent mass %d, reality mass %d) from %d sources",
        len(table), table.intent_mass, table.reality_mass, len(jobs),
    )
    return table


def _indexed(source: Any, index: int, corpus: str) -> CorpusSource:
    """Coerce a source; bare strings get a positional identifier."""
    if isinstance(source, str):
        return CorpusSource(identifier=f"{corpus}-{index}", text=source)
    return CorpusSource.coerce(source)
