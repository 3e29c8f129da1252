"""Lazily computed Pearson similarity between user pairs, memoized per source."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from threading import Lock

import numpy as np
from scipy.sparse import csr_matrix

from ..config import SimilaritySource
from ..data import row_entries
from ..profiles import SparseProfileStore
from .matrix import canonical_pair


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Similarity:
    """A similarity that is either a finite value or explicitly undefined."""

    value: float | None

    @property
    def is_defined(self) -> bool:
        return self.value is not None

    @classmethod
    def defined(cls, value: float) -> "Similarity":
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"defined similarity must be finite, got {value}")
        return cls(value)


UNDEFINED = Similarity(None)


def pearson(
    a_idx: np.ndarray,
    a_val: np.ndarray,
    b_idx: np.ndarray,
    b_val: np.ndarray,
    *,
    shrinkage: int = 0,
) -> float | None:
    """Pearson correlation over co-present indices.

    Returns None with fewer than two shared entries or zero variance on either side.
    With `shrinkage > 0` the correlation is damped by n / (n + shrinkage).
    """
    _, ia, ib = np.intersect1d(a_idx, b_idx, assume_unique=True, return_indices=True)
    n = int(ia.size)
    if n < 2:
        return None
    x = np.asarray(a_val, dtype=np.float64)[ia]
    y = np.asarray(b_val, dtype=np.float64)[ib]
    x = x - x.mean()
    y = y - y.mean()
    den = math.sqrt(float(np.dot(x, x))) * math.sqrt(float(np.dot(y, y)))
    if den == 0.0:
        return None
    corr = float(np.dot(x, y)) / den
    if not math.isfinite(corr):
        return None
    # Guard tiny floating overshoot past [-1, 1].
    corr = max(-1.0, min(1.0, corr))
    if shrinkage > 0:
        corr *= n / (n + float(shrinkage))
    return corr


class PairwiseCorrelationCache:
    """Memo table of (1 + pcc) / 2 similarities, filled on first request.

    Undefined results are cached too, so each pair is computed at most once per
    source for the lifetime of the cache. Safe to share between threads.
    """

    def __init__(
        self,
        ratings: csr_matrix,
        profiles: SparseProfileStore | None = None,
        *,
        shrinkage: int = 0,
    ) -> None:
        self.ratings = csr_matrix(ratings)
        self.ratings.sort_indices()
        self.profiles = profiles
        self.shrinkage = int(shrinkage)
        self._cache: dict[tuple[SimilaritySource, int, int], Similarity] = {}
        self._lock = Lock()
        self.computations = 0

    def __len__(self) -> int:
        return len(self._cache)

    def similarity(self, u: int, v: int, source: SimilaritySource = SimilaritySource.RATING) -> Similarity:
        source = SimilaritySource.parse(source)
        key = (source, *canonical_pair(u, v))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            sim = self._compute(int(u), int(v), source)
            self.computations += 1
            self._cache[key] = sim
        return sim

    def _compute(self, u: int, v: int, source: SimilaritySource) -> Similarity:
        if source is SimilaritySource.PROFILE:
            return self._profile_similarity(u, v)
        return self._rating_similarity(u, v)

    def _rating_similarity(self, u: int, v: int) -> Similarity:
        n = int(self.ratings.shape[0])
        if not (0 <= u < n and 0 <= v < n):
            return UNDEFINED
        u_idx, u_val = row_entries(self.ratings, u)
        if u_idx.size == 0:
            return UNDEFINED
        v_idx, v_val = row_entries(self.ratings, v)
        return self._bounded(pearson(u_idx, u_val, v_idx, v_val, shrinkage=self.shrinkage))

    def _profile_similarity(self, u: int, v: int) -> Similarity:
        if self.profiles is None:
            raise ValueError("profile similarity requested but no profile store was provided")
        pu = self.profiles.get(u)
        pv = self.profiles.get(v)
        if pu is None or pv is None:
            return UNDEFINED
        dims = np.arange(self.profiles.dim)
        return self._bounded(pearson(dims, pu, dims, pv, shrinkage=self.shrinkage))

    @staticmethod
    def _bounded(corr: float | None) -> Similarity:
        if corr is None:
            return UNDEFINED
        return Similarity.defined((1.0 + corr) / 2.0)
