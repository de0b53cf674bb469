"""
Corpus Collection for Trust Debt

This module walks a repository and splits its text into the two corpora the
pipeline compares.

    Intent  (what the project says it does):
        - Documentation files (.md, .rst, .txt)
        - Python docstrings (module, class and function level)

    Reality (what the project actually does):
        - Python source with docstrings and comments stripped
        - Other source files, verbatim
        - Commit messages from `git log`, when the directory is a work tree

Design Decisions:
    - Uses LibCST both to collect docstrings and to strip them, so a
      docstring lands in exactly one corpus
    - Sources are ordered by relative path, commits by recency, so
      identifiers and ordering are stable across runs
    - Files that cannot be read or parsed are recorded on the corpus and
      skipped; collection never fails on a single bad file
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

import libcst as cst

from trustdebt.models import Corpus, CorpusSource


logger = logging.getLogger(__name__)

DOC_SUFFIXES = frozenset({".md", ".rst", ".txt"})
CODE_SUFFIXES = frozenset({
    ".js", ".jsx", ".ts", ".tsx", ".go", ".rs", ".java", ".kt", ".c", ".h",
    ".cc", ".cpp", ".hpp", ".cs", ".rb", ".php", ".swift", ".scala", ".sh", ".sql",
})
EXCLUDED_DIRS = frozenset({"__pycache__", "node_modules", "venv", "build", "dist", "site-packages"})
DEFAULT_EXCLUDE_PATTERNS = ["**/*.pyc", "**/*.min.js"]
MAX_FILE_BYTES = 1_000_000
GIT_LOG_LIMIT = 500
COMMIT_SEPARATOR = "\x1e"


def _is_docstring_statement(stmt: cst.BaseStatement) -> bool:
    """A bare string literal expression statement."""
    if not isinstance(stmt, cst.SimpleStatementLine) or len(stmt.body) != 1:
        return False
    expr = stmt.body[0]
    return isinstance(expr, cst.Expr) and isinstance(
        expr.value, (cst.SimpleString, cst.ConcatenatedString)
    )


class DocstringCollector(cst.CSTVisitor):
    """
    CST Visitor that collects module, class and function docstrings.

    Usage:
        module = cst.parse_module(source)
        collector = DocstringCollector()
        module.visit(collector)
        collector.docstrings
    """

    def __init__(self) -> None:
        self.docstrings: list[str] = []

    def visit_Module(self, node: cst.Module) -> bool:
        self._add(node.get_docstring())
        return True

    def visit_ClassDef(self, node: cst.ClassDef) -> bool:
        self._add(node.get_docstring())
        return True

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        self._add(node.get_docstring())
        return True

    def _add(self, docstring: Optional[str]) -> None:
        if docstring:
            self.docstrings.append(docstring)


class DocstringRemover(cst.CSTTransformer):
    """
    CST Transformer that removes module, class and function docstrings.

    A body left empty by the removal gets a `pass` statement so the result
    is still valid Python.
    """

    def leave_Module(self, original_node: cst.Module, updated_node: cst.Module) -> cst.Module:
        if updated_node.body and _is_docstring_statement(updated_node.body[0]):
            return updated_node.with_changes(body=updated_node.body[1:])
        return updated_node

    def leave_FunctionDef(
        self,
        original_node: cst.FunctionDef,
        updated_node: cst.FunctionDef,
    ) -> cst.FunctionDef:
        return self._strip_body(updated_node)

    def leave_ClassDef(
        self,
        original_node: cst.ClassDef,
        updated_node: cst.ClassDef,
    ) -> cst.ClassDef:
        return self._strip_body(updated_node)

    def _strip_body(self, node):
        body = node.body
        if not isinstance(body, cst.IndentedBlock) or not body.body:
            return node
        if not _is_docstring_statement(body.body[0]):
            return node
        remaining = list(body.body[1:]) or [cst.SimpleStatementLine(body=[cst.Pass()])]
        return node.with_changes(body=body.with_changes(body=remaining))


class CommentRemover(cst.CSTTransformer):
    """CST Transformer that removes all comments."""

    def leave_EmptyLine(
        self,
        original_node: cst.EmptyLine,
        updated_node: cst.EmptyLine,
    ) -> cst.EmptyLine:
        if updated_node.comment is not None:
            return updated_node.with_changes(comment=None)
        return updated_node

    def leave_TrailingWhitespace(
        self,
        original_node: cst.TrailingWhitespace,
        updated_node: cst.TrailingWhitespace,
    ) -> cst.TrailingWhitespace:
        if updated_node.comment is not None:
            return updated_node.with_changes(comment=None)
        return updated_node


def split_python_source(source: str) -> tuple[list[str], str]:
    """
    Split Python source into its docstrings and its bare code.

    Args:
        source: Python module source

    Returns:
        (docstrings, code without docstrings or comments)

    Raises:
        libcst.ParserSyntaxError: If the source cannot be parsed

    Example:
        >>> docs, code = split_python_source("def f():\\n    '''Adds.'''\\n    return 1  # one\\n")
        >>> docs
        ['Adds.']
    """
    module = cst.parse_module(source)
    collector = DocstringCollector()
    module.visit(collector)
    stripped = module.visit(DocstringRemover()).visit(CommentRemover())
    return collector.docstrings, stripped.code


def _is_excluded(relative: Path, patterns: list[str]) -> bool:
    if any(part.startswith(".") or part in EXCLUDED_DIRS for part in relative.parts):
        return True
    return any(relative.match(pattern) for pattern in patterns)


def _read_text(path: Path) -> str:
    if path.stat().st_size > MAX_FILE_BYTES:
        raise ValueError(f"larger than {MAX_FILE_BYTES} bytes")
    return path.read_text(encoding="utf-8")


def collect_commit_messages(directory: Path, limit: int = GIT_LOG_LIMIT) -> list[CorpusSource]:
    """
    Collect recent commit messages of a git work tree, newest first.

    Returns an empty list if the directory is not a work tree or git is
    unavailable.
    """
    try:
        completed = subprocess.run(
            ["git", "-C", str(directory), "log", f"-n{limit}",
             f"--pretty=format:%H%n%B{COMMIT_SEPARATOR}"],
            capture_output=True,
            text=True,
            check=True,
            timeout=30,
        )
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
        logger.debug("No commit history for %s: %s", directory, exc)
        return []

    sources = []
    for entry in completed.stdout.split(COMMIT_SEPARATOR):
        entry = entry.strip()
        if not entry:
            continue
        commit, _, message = entry.partition("\n")
        if message.strip():
            sources.append(CorpusSource(identifier=f"commit:{commit[:12]}", text=message.strip()))
    return sources


def collect_corpus(
    directory: Path | str,
    exclude_patterns: Optional[list[str]] = None,
    include_commits: bool = True,
) -> Corpus:
    """
    Collect the Intent and Reality corpora of a repository.

    Args:
        directory: Repository root
        exclude_patterns: Glob patterns to exclude (e.g., ["**/test_*.py"]);
                          hidden paths and build directories are always skipped
        include_commits: Add `git log` messages to the Reality corpus

    Returns:
        Corpus with both source lists and any per-file errors

    Raises:
        FileNotFoundError: If the directory does not exist
        NotADirectoryError: If the path is not a directory

    Example:
        >>> corpus = collect_corpus("./my_project")
        >>> print(f"{len(corpus.intent)} intent / {len(corpus.reality)} reality sources")
    """
    directory = Path(directory)
    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")

    patterns = DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns
    corpus = Corpus()

    files = sorted(path for path in directory.rglob("*") if path.is_file())
    for path in files:
        relative = path.relative_to(directory)
        if _is_excluded(relative, patterns):
            continue
        suffix = path.suffix.lower()
        if suffix not in DOC_SUFFIXES and suffix not in CODE_SUFFIXES and suffix != ".py":
            continue
        identifier = relative.as_posix()

        try:
            text = _read_text(path)
            if suffix == ".py":
                docstrings, code = split_python_source(text)
                if docstrings:
                    corpus.intent.append(
                        CorpusSource(identifier=f"{identifier}#docstrings", text="\n\n".join(docstrings))
                    )
                corpus.reality.append(CorpusSource(identifier=identifier, text=code))
            elif suffix in DOC_SUFFIXES:
                corpus.intent.append(CorpusSource(identifier=identifier, text=text))
            else:
                corpus.reality.append(CorpusSource(identifier=identifier, text=text))
        except (OSError, UnicodeDecodeError, ValueError, cst.ParserSyntaxError) as exc:
            corpus.errors.append((identifier, str(exc)))
            logger.warning("Skipping %s: %s", identifier, exc)

    if include_commits:
        corpus.reality.extend(collect_commit_messages(directory))

    logger.info(
        "Collected %d intent and %d reality sources from %s (%d errors)",
        len(corpus.intent), len(corpus.reality), directory, len(corpus.errors),
    )
    return corpus
