"""
Keyword extraction module for Trust Debt.

This module tokenizes the Intent and Reality corpora and accumulates
per-corpus token frequencies.
"""

from trustdebt.extract.keywords import (
    KeywordTable,
    extract_keywords,
    extract_source,
    source_key,
    split_source_key,
    tokenize,
)

__all__ = [
    "KeywordTable",
    "extract_keywords",
    "extract_source",
    "source_key",
    "split_source_key",
    "tokenize",
]
