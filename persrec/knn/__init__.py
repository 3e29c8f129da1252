"""User-based k-nearest-neighbour rating and ranking prediction.

Similar users come from a precomputed Euclidean similarity matrix built either
from co-rated items or from personality profiles.
"""

from .predictor import KNNPredictor, Neighbour, RecommendedItem

__all__ = ["KNNPredictor", "Neighbour", "RecommendedItem"]
