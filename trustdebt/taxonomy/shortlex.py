"""
ShortLex category codes.

A code is a string of uppercase letters, one per taxonomy level: roots are
"A", "B", ...; the children of "B" are "BA", "BB", ... The canonical order
sorts by length first and lexicographically within equal length, so every
root precedes every child:

    >>> shortlex_sorted(["B", "AA", "A", "AB"])
    ['A', 'B', 'AA', 'AB']
"""

import re
import string
from typing import Iterable, Optional


ALPHABET = string.ascii_uppercase
CODE_PATTERN = re.compile(r"^[A-Z]+$")


def validate_code(code: str) -> str:
    """Return the code unchanged, or raise ValueError if it is malformed."""
    if not CODE_PATTERN.match(code):
        raise ValueError(f"Invalid ShortLex code: {code!r}")
    return code


def shortlex_key(code: str) -> tuple[int, str]:
    """Sort key implementing length-first, then lexicographic order."""
    return (len(code), code)


def shortlex_sorted(codes: Iterable[str]) -> list[str]:
    """Sort codes into ShortLex order."""
    return sorted(codes, key=shortlex_key)


def root_code(ordinal: int) -> str:
    """Code of the root with the given 0-based sibling rank."""
    if not 0 <= ordinal < len(ALPHABET):
        raise ValueError(f"Root ordinal out of range: {ordinal}")
    return ALPHABET[ordinal]


def child_code(parent: str, ordinal: int) -> str:
    """Code of a child of parent with the given 0-based sibling rank."""
    if not 0 <= ordinal < len(ALPHABET):
        raise ValueError(f"Child ordinal out of range: {ordinal}")
    return validate_code(parent) + ALPHABET[ordinal]


def parent_code(code: str) -> Optional[str]:
    """Code of the parent, None for roots."""
    validate_code(code)
    return code[:-1] or None


def depth_of(code: str) -> int:
    """Depth encoded by the code (0 for roots)."""
    return len(validate_code(code)) - 1


def sibling_rank(code: str) -> int:
    """0-based rank of the code among its siblings."""
    return ALPHABET.index(validate_code(code)[-1])


def positions(codes: Iterable[str]) -> dict[str, int]:
    """Map each code to its rank in the ShortLex total order."""
    ordered = shortlex_sorted(codes)
    if len(set(ordered)) != len(ordered):
        raise ValueError("Duplicate ShortLex codes")
    return {code: index for index, code in enumerate(ordered)}
