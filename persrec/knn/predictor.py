from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.sparse import csc_matrix, csr_matrix

from ..config import KNNConfig, SimilaritySource
from ..data import RatingData
from ..profiles import SparseProfileStore
from ..similarity.euclidean import build_from_profiles, build_from_ratings
from ..similarity.matrix import SymmetricSimilarityMatrix


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Neighbour:
    user: int
    similarity: float
    rating: float


@dataclass(frozen=True)
class RecommendedItem:
    item: int
    score: float


def _mean_or(sums: np.ndarray, counts: np.ndarray, fallback: float) -> np.ndarray:
    out = np.full(sums.shape, float(fallback), dtype=np.float64)
    mask = counts > 0
    out[mask] = sums[mask] / counts[mask]
    return out


class KNNPredictor:
    """User-based nearest-neighbour predictor over a precomputed similarity matrix.

    Rating mode blends the neighbours' average rating with the item mean:
        (n / (n + m)) * avg + (m / (n + m)) * item_mean
    Ranking mode scores an item by the summed similarity of the neighbours who
    rated it; negative similarities are kept there.
    """

    def __init__(
        self,
        ratings: csr_matrix,
        similarities: SymmetricSimilarityMatrix,
        *,
        knn: int = 0,
        m: float = 0.0,
        global_mean: float | None = None,
    ) -> None:
        if knn < 0:
            raise ValueError(f"knn must be >= 0, got {knn}")
        if m < 0:
            raise ValueError(f"m must be >= 0, got {m}")

        self.ratings = csr_matrix(ratings)
        self.ratings.sort_indices()
        self._by_item = csc_matrix(self.ratings)
        self._by_item.sort_indices()
        self.similarities = similarities
        self.knn = int(knn)
        self.m = float(m)

        nnz = self.ratings.nnz
        if global_mean is None:
            global_mean = float(self.ratings.data.mean()) if nnz else 0.0
        self.global_mean = float(global_mean)

        user_counts = np.diff(self.ratings.indptr)
        item_counts = np.diff(self._by_item.indptr)
        self.user_means = _mean_or(np.asarray(self.ratings.sum(axis=1)).ravel(), user_counts, self.global_mean)
        self.item_means = _mean_or(np.asarray(self.ratings.sum(axis=0)).ravel(), item_counts, self.global_mean)
        self.user_means.setflags(write=False)
        self.item_means.setflags(write=False)

    @classmethod
    def from_config(
        cls,
        data: RatingData,
        cfg: KNNConfig,
        profiles: SparseProfileStore | None = None,
    ) -> "KNNPredictor":
        """Build only the similarity matrix selected by `cfg.perssim`."""
        source = SimilaritySource.parse(cfg.perssim)
        if source is SimilaritySource.PROFILE:
            if profiles is None or len(profiles) == 0:
                raise ValueError("profile-based similarity selected but no personality profiles were loaded")
            sims = build_from_profiles(profiles, size=data.num_users, n_jobs=cfg.n_jobs)
        else:
            sims = build_from_ratings(data.ratings, n_jobs=cfg.n_jobs)
        logger.info("KNN: source=%s knn=%d m=%.3f", source.value, cfg.knn, cfg.m)
        return cls(data.ratings, sims, knn=cfg.knn, m=cfg.m, global_mean=data.global_mean)

    def _item_ratings(self, j: int) -> dict[int, float]:
        start, end = self._by_item.indptr[j], self._by_item.indptr[j + 1]
        users = self._by_item.indices[start:end]
        values = self._by_item.data[start:end]
        return {int(v): float(r) for v, r in zip(users, values)}

    def neighbours(self, u: int, j: int, *, ranking: bool = False) -> list[Neighbour]:
        """Neighbours of `u` that rated `j`, best first, capped at `knn` when set."""
        if not 0 <= j < self.ratings.shape[1]:
            return []
        raters = self._item_ratings(int(j))
        candidates: list[Neighbour] = []
        for v, sim in self.similarities.row(int(u)).items():
            rate = raters.get(v, 0.0)
            if rate <= 0:
                continue
            if ranking or sim > 0:
                candidates.append(Neighbour(user=v, similarity=sim, rating=rate))

        candidates.sort(key=lambda nb: (-nb.similarity, nb.user))
        if self.knn > 0 and len(candidates) > self.knn:
            candidates = candidates[: self.knn]
        return candidates

    def item_mean(self, j: int) -> float:
        if 0 <= j < self.item_means.shape[0]:
            return float(self.item_means[j])
        return self.global_mean

    def predict(self, u: int, j: int, *, ranking: bool = False) -> float:
        nns = self.neighbours(u, j, ranking=ranking)
        if not nns:
            return 0.0 if ranking else self.global_mean

        if ranking:
            return float(sum(nb.similarity for nb in nns))

        n = float(len(nns))
        avg = sum(nb.rating for nb in nns) / n
        return (n / (n + self.m)) * avg + (self.m / (n + self.m)) * self.item_mean(j)

    def predict_many(self, users: Sequence[int], items: Sequence[int], *, ranking: bool = False) -> np.ndarray:
        if len(users) != len(items):
            raise ValueError(f"users/items length mismatch: {len(users)} vs {len(items)}")
        return np.asarray(
            [self.predict(int(u), int(j), ranking=ranking) for u, j in zip(users, items)],
            dtype=np.float64,
        )

    def recommend(self, u: int, *, k: int = 10) -> list[RecommendedItem]:
        """Top-k unrated items for `u` by ranking score."""
        start, end = self.ratings.indptr[u], self.ratings.indptr[u + 1]
        seen = set(self.ratings.indices[start:end].tolist())
        scored = [
            RecommendedItem(item=j, score=self.predict(u, j, ranking=True))
            for j in range(self.ratings.shape[1])
            if j not in seen
        ]
        scored = [r for r in scored if r.score != 0.0]
        scored.sort(key=lambda r: (-r.score, r.item))
        return scored[: int(k)]
