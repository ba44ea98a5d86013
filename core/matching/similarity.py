"""
Descriptor similarity: cosine similarity remapped to [0, 1].

Raw cosine similarity ranges [-1, 1]; it is mapped through (cos + 1) / 2
so that 1.0 means identical direction, 0.5 means orthogonal and 0.0 means
opposite. A zero-norm descriptor carries no signal and scores 0.0.
"""

import numpy as np

from core.errors import DimensionMismatch

_EPS = 1e-12


def similarity(a, b) -> float:
    """
    Compare two descriptors.

    Args:
        a: (D,) sequence of floats.
        b: (D,) sequence of floats.

    Returns:
        Similarity score in [0, 1].

    Raises:
        DimensionMismatch: If the descriptors differ in length.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()

    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(expected=a.shape[0], actual=b.shape[0])

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a < _EPS or norm_b < _EPS:
        return 0.0

    cosine = float(np.dot(a, b)) / (norm_a * norm_b)

    # Clamp to [-1, 1] for numerical stability
    cosine = max(-1.0, min(1.0, cosine))

    return (cosine + 1.0) / 2.0
