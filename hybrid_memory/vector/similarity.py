"""
Similarity scoring: cosine similarity between embeddings and weighted score fusion.
Pure functions, no state.
"""

from typing import Sequence, Union

import numpy as np

Vector = Union[Sequence[float], np.ndarray]


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity of two vectors.

    Vectors of different length are not comparable (embedding dimension drift
    across provider changes) and score 0.0, as do empty or zero-norm vectors.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def fuse(vector_score: float, keyword_score: float,
         vector_weight: float = 0.6, keyword_weight: float = 0.4) -> float:
    """Weighted linear fusion of a vector score and a keyword score."""
    return vector_score * vector_weight + keyword_score * keyword_weight
