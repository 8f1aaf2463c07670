"""
Vector similarity helpers used by tool discovery.

All functions are pure. Inputs may be lists or numpy arrays; vector results
are returned as plain lists of floats so they serialize cleanly.
"""

from typing import List, NamedTuple, Sequence

import numpy as np

from toolmarket.utils.error_handling import DimensionMismatch, EmptyInput


Vector = Sequence[float]


class SimilarityMatch(NamedTuple):
    """Position of a candidate in the input list and its cosine similarity."""
    index: int
    similarity: float


def _as_array(vector: Vector) -> np.ndarray:
    return np.asarray(vector, dtype=float)


def _check_same_length(vec_a: Vector, vec_b: Vector) -> None:
    if len(vec_a) != len(vec_b):
        raise DimensionMismatch(len(vec_a), len(vec_b))


def cosine_similarity(vec_a: Vector, vec_b: Vector) -> float:
    """
    Calculate cosine similarity between two vectors.

    Returns 0.0 when either vector is empty or has zero magnitude.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    _check_same_length(vec_a, vec_b)
    if len(vec_a) == 0:
        return 0.0

    a = _as_array(vec_a)
    b = _as_array(vec_b)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    # Rounding can push identical vectors a hair past 1
    return max(-1.0, min(1.0, similarity))


def dot_product(vec_a: Vector, vec_b: Vector) -> float:
    _check_same_length(vec_a, vec_b)
    return float(np.dot(_as_array(vec_a), _as_array(vec_b)))


def magnitude(vector: Vector) -> float:
    return float(np.linalg.norm(_as_array(vector)))


def normalize(vector: Vector) -> List[float]:
    """Scale a vector to unit length; zero vectors come back unchanged."""
    norm = magnitude(vector)
    if norm == 0:
        return [float(v) for v in vector]
    return (_as_array(vector) / norm).tolist()


def euclidean_distance(vec_a: Vector, vec_b: Vector) -> float:
    _check_same_length(vec_a, vec_b)
    return float(np.linalg.norm(_as_array(vec_a) - _as_array(vec_b)))


def manhattan_distance(vec_a: Vector, vec_b: Vector) -> float:
    _check_same_length(vec_a, vec_b)
    return float(np.abs(_as_array(vec_a) - _as_array(vec_b)).sum())


def find_most_similar(query: Vector, candidates: Sequence[Vector], top_k: int = 5) -> List[SimilarityMatch]:
    """
    Rank candidates by cosine similarity to the query.

    Args:
        query: The query vector
        candidates: Vectors to compare against
        top_k: Maximum number of matches to return

    Returns:
        Matches in descending similarity; ties keep their input order

    Raises:
        DimensionMismatch: If any candidate differs in length from the query
    """
    if top_k <= 0 or not candidates:
        return []

    scores = [cosine_similarity(query, candidate) for candidate in candidates]
    order = np.argsort(-np.asarray(scores), kind="stable")[:top_k]
    return [SimilarityMatch(int(i), scores[i]) for i in order]


def vectors_equal(vec_a: Vector, vec_b: Vector, tolerance: float = 1e-10) -> bool:
    if len(vec_a) != len(vec_b):
        return False
    if len(vec_a) == 0:
        return True
    return bool(np.all(np.abs(_as_array(vec_a) - _as_array(vec_b)) <= tolerance))


def add(vec_a: Vector, vec_b: Vector) -> List[float]:
    _check_same_length(vec_a, vec_b)
    return (_as_array(vec_a) + _as_array(vec_b)).tolist()


def subtract(vec_a: Vector, vec_b: Vector) -> List[float]:
    _check_same_length(vec_a, vec_b)
    return (_as_array(vec_a) - _as_array(vec_b)).tolist()


def scale(vector: Vector, scalar: float) -> List[float]:
    return (_as_array(vector) * scalar).tolist()


def mean(vectors: Sequence[Vector]) -> List[float]:
    """
    Calculate the elementwise mean of several vectors.

    Raises:
        EmptyInput: If no vectors are given
        DimensionMismatch: If the vectors differ in length
    """
    if len(vectors) == 0:
        raise EmptyInput("Cannot calculate mean of an empty vector list", component="vector")

    dimensions = len(vectors[0])
    for vector in vectors[1:]:
        _check_same_length(vectors[0], vector)

    if dimensions == 0:
        return []
    return np.mean(np.asarray(vectors, dtype=float), axis=0).tolist()
