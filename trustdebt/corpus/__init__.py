"""
Corpus module for Trust Debt.

This module collects the Intent and Reality corpora from a repository on
disk.
"""

from trustdebt.corpus.collector import (
    CommentRemover,
    DocstringCollector,
    DocstringRemover,
    collect_commit_messages,
    collect_corpus,
    split_python_source,
)

__all__ = [
    "CommentRemover",
    "DocstringCollector",
    "DocstringRemover",
    "collect_commit_messages",
    "collect_corpus",
    "split_python_source",
]
