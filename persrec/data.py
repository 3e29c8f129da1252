from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Hashable, Iterable

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix
from sklearn import model_selection
from sklearn.preprocessing import LabelEncoder


logger = logging.getLogger(__name__)


RATING_COLUMNS = ("user", "item", "rating")
SOCIAL_COLUMNS = ("truster", "trustee")


class IdResolver:
    """Bidirectional mapping between external ids and dense internal indices [0..n)."""

    def __init__(self, external_ids: Iterable[Hashable]) -> None:
        values = np.asarray([str(x) for x in external_ids], dtype=object)
        self._encoder = LabelEncoder()
        self._encoder.fit(values)
        self._to_idx = {str(x): i for i, x in enumerate(self._encoder.classes_.tolist())}

    def __len__(self) -> int:
        return len(self._to_idx)

    def contains(self, external_id: Hashable) -> bool:
        return str(external_id) in self._to_idx

    def index(self, external_id: Hashable) -> int:
        key = str(external_id)
        if key not in self._to_idx:
            raise KeyError(f"Unknown id: {external_id!r}")
        return self._to_idx[key]

    def indices(self, external_ids: Iterable[Hashable]) -> np.ndarray:
        """Vectorized lookup; raises ValueError (from LabelEncoder) on unknown ids."""
        values = np.asarray([str(x) for x in external_ids], dtype=object)
        return self._encoder.transform(values).astype(np.int64)

    def external(self, index: int) -> str:
        return str(self._encoder.classes_[int(index)])


@dataclass(frozen=True)
class RatingData:
    """Sparse training inputs keyed by internal indices."""

    ratings: csr_matrix
    social: csr_matrix
    users: IdResolver
    items: IdResolver
    global_mean: float

    @property
    def num_users(self) -> int:
        return int(self.ratings.shape[0])

    @property
    def num_items(self) -> int:
        return int(self.ratings.shape[1])


def _read_table(path: Path, columns: tuple[str, ...], sep: str) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    df = pd.read_csv(path, sep=sep, header=None, engine="python", comment="#", dtype=str)
    if df.shape[1] < len(columns):
        raise ValueError(f"{path.name} needs at least {len(columns)} columns, got {df.shape[1]}")
    df = df.iloc[:, : len(columns)].copy()
    df.columns = list(columns)
    return df


def load_ratings(path: Path, *, sep: str = r"[ ,\t]+") -> pd.DataFrame:
    """Load `user item rating` rows (no header) into a validated DataFrame."""
    df = _read_table(path, RATING_COLUMNS, sep)
    df["rating"] = pd.to_numeric(df["rating"], errors="coerce")
    df = df.dropna(subset=list(RATING_COLUMNS)).reset_index(drop=True)
    validate_ratings(df)
    logger.info("Loaded %d ratings from %s", len(df), path)
    return df


def load_social(path: Path, *, sep: str = r"[ ,\t]+") -> pd.DataFrame:
    """Load `truster trustee` rows (extra columns such as a weight are ignored)."""
    df = _read_table(path, SOCIAL_COLUMNS, sep)
    df = df.dropna().drop_duplicates().reset_index(drop=True)
    logger.info("Loaded %d social links from %s", len(df), path)
    return df


def validate_ratings(df: pd.DataFrame) -> None:
    missing = [c for c in RATING_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"ratings missing required columns: {missing}")
    if (df["rating"] <= 0).any():
        raise ValueError("ratings must be positive (absent entries mean 'not rated')")
    if df.duplicated(subset=["user", "item"]).any():
        raise ValueError("ratings contain duplicate (user, item) rows")


def build_rating_data(
    ratings: pd.DataFrame,
    social: pd.DataFrame | None = None,
    *,
    users: IdResolver | None = None,
    items: IdResolver | None = None,
) -> RatingData:
    """Encode ratings (and optional trust links) into sparse matrices.

    Resolvers default to the ids seen in `ratings`; pass them explicitly to keep a
    train split aligned with the full dataset's index space.
    """
    validate_ratings(ratings)
    users = users if users is not None else IdResolver(ratings["user"])
    items = items if items is not None else IdResolver(ratings["item"])

    rows = users.indices(ratings["user"])
    cols = items.indices(ratings["item"])
    values = ratings["rating"].astype(float).to_numpy()
    rating_mat = csr_matrix((values, (rows, cols)), shape=(len(users), len(items)))
    rating_mat.sort_indices()

    if social is not None and not social.empty:
        known = social["truster"].map(users.contains) & social["trustee"].map(users.contains)
        dropped = int((~known).sum())
        if dropped:
            logger.info("Dropped %d social links to users without ratings", dropped)
        social = social[known & (social["truster"] != social["trustee"])]
        s_rows = users.indices(social["truster"])
        s_cols = users.indices(social["trustee"])
        social_mat = csr_matrix(
            (np.ones(len(s_rows), dtype=np.float64), (s_rows, s_cols)),
            shape=(len(users), len(users)),
        )
        # Duplicate links collapse to a single edge.
        social_mat.data[:] = 1.0
    else:
        social_mat = csr_matrix((len(users), len(users)), dtype=np.float64)
    social_mat.sort_indices()

    global_mean = float(values.mean()) if len(values) else 0.0
    logger.info(
        "RatingData: users=%d items=%d ratings=%d links=%d global_mean=%.4f",
        len(users),
        len(items),
        rating_mat.nnz,
        social_mat.nnz,
        global_mean,
    )
    return RatingData(ratings=rating_mat, social=social_mat, users=users, items=items, global_mean=global_mean)


def split_ratings(
    ratings: pd.DataFrame,
    *,
    test_size: float = 0.2,
    random_state: int = 42,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Random holdout split of the ratings table."""
    train, test = model_selection.train_test_split(
        ratings,
        test_size=float(test_size),
        random_state=int(random_state),
    )
    return train.reset_index(drop=True), test.reset_index(drop=True)


def row_entries(mat: csr_matrix, row: int) -> tuple[np.ndarray, np.ndarray]:
    """Column indices and values of one CSR row (indices sorted ascending)."""
    start, end = mat.indptr[row], mat.indptr[row + 1]
    return mat.indices[start:end], mat.data[start:end]
