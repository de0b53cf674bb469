"""Vector similarity helpers shared by clustering, validation and the matrix.

Zero vectors carry no direction, so every measure here defines their
similarity to anything as 0 rather than NaN.
"""

import numpy as np


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between a and b, clamped to [-1, 1].

    Args:
        a: First vector
        b: Second vector (same length)

    Returns:
        Similarity between -1 and 1, or 0.0 if either vector is zero
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(max(-1.0, min(1.0, np.dot(a, b) / norm)))


def pearson_correlation(a: np.ndarray, b: np.ndarray) -> float:
    """Pearson correlation of a and b; 0.0 if either has zero variance."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.size < 2:
        return 0.0
    return cosine_similarity(a - a.mean(), b - b.mean())


def correlation(a: np.ndarray, b: np.ndarray, method: str = "cosine") -> float:
    """Dispatch to the configured correlation measure."""
    if method == "cosine":
        return cosine_similarity(a, b)
    if method == "pearson":
        return pearson_correlation(a, b)
    raise ValueError(f"Unknown correlation method: {method}")


def project_out(vector: np.ndarray, basis: np.ndarray) -> np.ndarray:
    """Remove from vector its component along basis (b - (b.a / a.a) a)."""
    vector = np.asarray(vector, dtype=float)
    basis = np.asarray(basis, dtype=float)
    denominator = float(np.dot(basis, basis))
    if denominator == 0:
        return vector.copy()
    return vector - (float(np.dot(vector, basis)) / denominator) * basis
