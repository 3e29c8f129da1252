"""User-user similarity: precomputed Euclidean matrices and a lazy Pearson cache."""

from .correlation import UNDEFINED, PairwiseCorrelationCache, Similarity, pearson
from .euclidean import build_from_profiles, build_from_ratings, distance_to_similarity, squared_distance
from .matrix import SymmetricSimilarityMatrix, canonical_pair

__all__ = [
    "UNDEFINED",
    "PairwiseCorrelationCache",
    "Similarity",
    "SymmetricSimilarityMatrix",
    "build_from_profiles",
    "build_from_ratings",
    "canonical_pair",
    "distance_to_similarity",
    "pearson",
    "squared_distance",
]
