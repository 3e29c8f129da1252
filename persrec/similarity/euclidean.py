"""Euclidean-distance user similarity, precomputed for every user pair.

Distance is taken over co-present coordinates only (co-rated items for rating
rows, all dimensions for dense profiles) and mapped to a similarity in (0, 1]
with 1 / (1 + d). Two rows with no overlap therefore get distance 0 and
similarity 1; callers that care must filter on overlap themselves.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import numpy as np
from scipy.sparse import csr_matrix

from ..data import row_entries
from ..profiles import SparseProfileStore
from .matrix import SymmetricSimilarityMatrix


logger = logging.getLogger(__name__)

PairBlock = dict[tuple[int, int], float]
# Pairs stored by one worker, plus how many pairs it skipped.
BlockResult = tuple[PairBlock, int]


def squared_distance(
    a_idx: np.ndarray,
    a_val: np.ndarray,
    b_idx: np.ndarray,
    b_val: np.ndarray,
) -> float:
    """Sum of squared differences over the indices present in both sparse vectors."""
    _, ia, ib = np.intersect1d(a_idx, b_idx, assume_unique=True, return_indices=True)
    if ia.size == 0:
        return 0.0
    diff = np.asarray(a_val)[ia] - np.asarray(b_val)[ib]
    return float(np.dot(diff, diff))


def distance_to_similarity(d: float) -> float:
    return 1.0 / (1.0 + d)


def _row_ranges(n: int, n_jobs: int) -> list[range]:
    n_jobs = max(1, min(int(n_jobs), max(n, 1)))
    bounds = np.linspace(0, n, n_jobs + 1).astype(int)
    return [range(int(lo), int(hi)) for lo, hi in zip(bounds[:-1], bounds[1:]) if hi > lo]


def _run_blocks(n: int, n_jobs: int, block_fn: Callable[[range], BlockResult]) -> list[BlockResult]:
    ranges = _row_ranges(n, n_jobs)
    if len(ranges) <= 1:
        return [block_fn(r) for r in ranges]
    # Each worker fills its own dict; blocks are merged single-threaded afterwards.
    with ThreadPoolExecutor(max_workers=len(ranges)) as pool:
        return list(pool.map(block_fn, ranges))


def _merge(size: int, blocks: list[BlockResult]) -> tuple[SymmetricSimilarityMatrix, int]:
    sims = SymmetricSimilarityMatrix(size)
    skipped = 0
    for pairs, block_skipped in blocks:
        sims.update(pairs)
        skipped += block_skipped
    return sims, skipped


def build_from_ratings(ratings: csr_matrix, *, n_jobs: int = 1) -> SymmetricSimilarityMatrix:
    """Similarity for every pair of users that both have at least one rating."""
    ratings = csr_matrix(ratings)
    ratings.sort_indices()
    n = int(ratings.shape[0])
    counts = np.diff(ratings.indptr)

    def block(rows: range) -> BlockResult:
        out: PairBlock = {}
        skipped = 0
        for i in rows:
            if counts[i] == 0:
                skipped += n - i - 1
                continue
            i_idx, i_val = row_entries(ratings, i)
            for j in range(i + 1, n):
                if counts[j] == 0:
                    skipped += 1
                    continue
                j_idx, j_val = row_entries(ratings, j)
                sim = distance_to_similarity(squared_distance(i_idx, i_val, j_idx, j_val))
                if math.isnan(sim):
                    skipped += 1
                    continue
                out[(i, j)] = sim
        return out, skipped

    sims, skipped = _merge(n, _run_blocks(n, n_jobs, block))
    logger.info("Rating similarity: users=%d pairs=%d skipped=%d", n, len(sims), skipped)
    return sims


def build_from_profiles(
    profiles: SparseProfileStore,
    *,
    size: int | None = None,
    n_jobs: int = 1,
) -> SymmetricSimilarityMatrix:
    """Similarity for every pair of users in `profiles`, keyed by their user index.

    `size` is the user-index bound of the result (defaults to the largest id + 1).
    """
    ids, vectors = profiles.as_matrix()
    if size is None:
        size = (ids[-1] + 1) if ids else 0
    n = len(ids)
    dims = np.arange(profiles.dim)

    def block(positions: range) -> BlockResult:
        out: PairBlock = {}
        skipped = 0
        for a in positions:
            for b in range(a + 1, n):
                sim = distance_to_similarity(squared_distance(dims, vectors[a], dims, vectors[b]))
                if math.isnan(sim):
                    skipped += 1
                    continue
                out[(ids[a], ids[b])] = sim
        return out, skipped

    sims, skipped = _merge(int(size), _run_blocks(n, n_jobs, block))
    logger.info("Profile similarity: profiles=%d pairs=%d skipped=%d", n, len(sims), skipped)
    return sims
