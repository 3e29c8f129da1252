"""Per-user personality profile vectors."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator, Sequence

import numpy as np

from .data import IdResolver


logger = logging.getLogger(__name__)

_FIELD_SPLIT_RE = re.compile(r"[ ,]")

DEFAULT_PROFILE_COLUMNS = (5, 6, 7, 8, 9)


class SparseProfileStore:
    """Fixed-length float vectors keyed by internal user index.

    Users without a profile are simply absent.
    """

    def __init__(self, dim: int = len(DEFAULT_PROFILE_COLUMNS)) -> None:
        if dim < 1:
            raise ValueError(f"profile dimension must be >= 1, got {dim}")
        self.dim = int(dim)
        self._vectors: dict[int, np.ndarray] = {}

    def add(self, user: int, vector: Sequence[float]) -> None:
        arr = np.asarray(vector, dtype=np.float64).reshape(-1)
        if arr.shape[0] != self.dim:
            raise ValueError(f"profile for user {user} has {arr.shape[0]} dimensions, expected {self.dim}")
        arr.setflags(write=False)
        self._vectors[int(user)] = arr

    def get(self, user: int) -> np.ndarray | None:
        return self._vectors.get(int(user))

    def __contains__(self, user: object) -> bool:
        return user in self._vectors

    def __len__(self) -> int:
        return len(self._vectors)

    def __iter__(self) -> Iterator[int]:
        return iter(self.user_ids())

    def user_ids(self) -> list[int]:
        """Users with a profile, ascending."""
        return sorted(self._vectors)

    def as_matrix(self) -> tuple[list[int], np.ndarray]:
        """(user ids, stacked vectors) in iteration order."""
        ids = self.user_ids()
        if not ids:
            return ids, np.zeros((0, self.dim), dtype=np.float64)
        return ids, np.vstack([self._vectors[u] for u in ids])


def load_profiles(
    path: Path,
    resolver: IdResolver,
    *,
    columns: Sequence[int] = DEFAULT_PROFILE_COLUMNS,
) -> SparseProfileStore:
    """Read a personality file: column 0 is the external user id, `columns` hold the dimensions.

    Fields are separated by single spaces or commas. Users unknown to `resolver`
    (no ratings) are skipped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Personality file not found: {path}")

    columns = tuple(int(c) for c in columns)
    store = SparseProfileStore(dim=len(columns))
    skipped = 0
    with path.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            fields = _FIELD_SPLIT_RE.split(line)
            try:
                external_id = fields[0]
                vector = [float(fields[c]) for c in columns]
            except (IndexError, ValueError) as exc:
                raise ValueError(f"{path.name}:{lineno}: malformed personality line: {exc}") from exc

            if not resolver.contains(external_id):
                skipped += 1
                continue
            store.add(resolver.index(external_id), vector)

    logger.info("Loaded %d personality profiles from %s (skipped %d unknown users)", len(store), path, skipped)
    return store
