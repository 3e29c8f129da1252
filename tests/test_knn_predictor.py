from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from persrec.config import KNNConfig, SimilaritySource
from persrec.knn.predictor import KNNPredictor
from persrec.profiles import SparseProfileStore
from persrec.similarity.matrix import SymmetricSimilarityMatrix


def _ratings() -> csr_matrix:
    # item 0 rated by users 1, 2, 3; item 1 rated by user 0; item 2 unrated.
    return csr_matrix(
        np.array(
            [
                [0.0, 4.0, 0.0],
                [5.0, 0.0, 0.0],
                [3.0, 0.0, 0.0],
                [1.0, 0.0, 0.0],
            ]
        )
    )


def _sims(order: list[tuple[int, float]]) -> SymmetricSimilarityMatrix:
    sims = SymmetricSimilarityMatrix(4)
    for v, s in order:
        sims.set(0, v, s)
    return sims


@pytest.mark.parametrize(
    "order",
    [
        [(1, 0.9), (2, 0.5), (3, 0.1)],
        [(3, 0.1), (1, 0.9), (2, 0.5)],
        [(2, 0.5), (3, 0.1), (1, 0.9)],
    ],
)
def test_top_k_keeps_the_two_most_similar(order) -> None:
    predictor = KNNPredictor(_ratings(), _sims(order), knn=2, m=0.0)

    nns = predictor.neighbours(0, 0)
    assert [nb.user for nb in nns] == [1, 2]
    assert predictor.predict(0, 0, ranking=True) == pytest.approx(1.4)
    assert predictor.predict(0, 0) == pytest.approx(4.0)


def test_unlimited_neighbourhood_uses_every_candidate() -> None:
    predictor = KNNPredictor(_ratings(), _sims([(1, 0.9), (2, 0.5), (3, 0.1)]), knn=0, m=0.0)
    assert predictor.predict(0, 0) == pytest.approx(3.0)
    assert predictor.predict(0, 0, ranking=True) == pytest.approx(1.5)


def test_empty_candidates_fall_back() -> None:
    predictor = KNNPredictor(_ratings(), SymmetricSimilarityMatrix(4), knn=5, m=3.0)

    assert predictor.predict(0, 0) == predictor.global_mean
    assert predictor.global_mean == pytest.approx(13.0 / 4.0)
    assert predictor.predict(0, 0, ranking=True) == 0.0


def test_shrinkage_blends_towards_item_mean() -> None:
    sims = _sims([(1, 0.9), (2, 0.5), (3, 0.1)])
    predictor = KNNPredictor(_ratings(), sims, knn=2, m=2.0)

    # neighbours 1 and 2: avg 4.0; item 0 mean (5 + 3 + 1) / 3 = 3.0
    assert predictor.item_mean(0) == pytest.approx(3.0)
    assert predictor.predict(0, 0) == pytest.approx(0.5 * 4.0 + 0.5 * 3.0)


def test_shrinkage_limits() -> None:
    sims = _sims([(1, 0.9), (2, 0.5)])
    no_damping = KNNPredictor(_ratings(), sims, m=0.0)
    heavy_damping = KNNPredictor(_ratings(), sims, m=1e9)

    assert no_damping.predict(0, 0) == pytest.approx(4.0)
    assert heavy_damping.predict(0, 0) == pytest.approx(3.0, rel=1e-6)


def test_negative_similarity_counts_only_for_ranking() -> None:
    sims = _sims([(1, 0.9), (2, -0.4), (3, 0.0)])
    predictor = KNNPredictor(_ratings(), sims, m=0.0)

    assert [nb.user for nb in predictor.neighbours(0, 0)] == [1]
    assert predictor.predict(0, 0) == pytest.approx(5.0)
    assert predictor.predict(0, 0, ranking=True) == pytest.approx(0.5)


def test_unrated_item_mean_falls_back_to_global_mean() -> None:
    predictor = KNNPredictor(_ratings(), _sims([(1, 0.9)]), m=1.0)
    assert predictor.item_mean(2) == predictor.global_mean
    assert predictor.predict(0, 2) == predictor.global_mean


def test_user_means_precomputed() -> None:
    ratings = _ratings()
    predictor = KNNPredictor(ratings, SymmetricSimilarityMatrix(4))
    np.testing.assert_allclose(predictor.user_means, [4.0, 5.0, 3.0, 1.0])
    with pytest.raises(ValueError):
        predictor.user_means[0] = 0.0


def test_recommend_orders_unrated_items_by_score() -> None:
    predictor = KNNPredictor(_ratings(), _sims([(1, 0.9), (2, 0.5)]))
    recs = predictor.recommend(0, k=5)
    assert [r.item for r in recs] == [0]
    assert recs[0].score == pytest.approx(1.4)


def test_from_config_builds_selected_matrix(small_data) -> None:
    cfg = KNNConfig(knn=2, perssim=SimilaritySource.RATING, m=1.0)
    predictor = KNNPredictor.from_config(small_data, cfg)
    assert predictor.similarities.get(0, 1) == pytest.approx(1.0 / (1.0 + 3.0))
    assert predictor.global_mean == pytest.approx(small_data.global_mean)


def test_from_config_profile_source_requires_profiles(small_data) -> None:
    cfg = KNNConfig(perssim=SimilaritySource.PROFILE)
    with pytest.raises(ValueError):
        KNNPredictor.from_config(small_data, cfg)
    with pytest.raises(ValueError):
        KNNPredictor.from_config(small_data, cfg, SparseProfileStore())


def test_from_config_profile_source(small_data) -> None:
    store = SparseProfileStore(dim=2)
    store.add(0, [0.0, 0.0])
    store.add(1, [1.0, 0.0])
    predictor = KNNPredictor.from_config(small_data, KNNConfig(knn=0, perssim=SimilaritySource.PROFILE, m=0.0), store)
    # u1 rated i0 with 4.0 and is u0's only profile neighbour.
    assert predictor.predict(0, 0) == pytest.approx(4.0)
    assert predictor.predict(2, 0) == pytest.approx(small_data.global_mean)


def test_predict_many_matches_predict() -> None:
    predictor = KNNPredictor(_ratings(), _sims([(1, 0.9), (2, 0.5)]), m=1.0)
    out = predictor.predict_many([0, 0, 1], [0, 2, 1])
    assert out.tolist() == pytest.approx([predictor.predict(0, 0), predictor.predict(0, 2), predictor.predict(1, 1)])
