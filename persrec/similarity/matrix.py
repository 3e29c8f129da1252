from __future__ import annotations

import math
from typing import Iterator


def canonical_pair(u: int, v: int) -> tuple[int, int]:
    """Order an unordered user pair as (smaller, larger)."""
    u, v = int(u), int(v)
    return (u, v) if u < v else (v, u)


class SymmetricSimilarityMatrix:
    """Upper-triangular store of user-user similarities.

    Each unordered pair is kept once under (min, max). A missing pair means the
    similarity is unknown, not zero.
    """

    def __init__(self, size: int) -> None:
        self.size = int(size)
        # row (smaller index) -> {column (larger index): similarity}
        self._upper: dict[int, dict[int, float]] = {}
        # column -> rows that hold a value for it, so row() works from either end
        self._lower: dict[int, set[int]] = {}
        self._count = 0

    def _check_index(self, u: int) -> None:
        if not 0 <= u < self.size:
            raise IndexError(f"user index {u} out of range [0, {self.size})")

    def set(self, u: int, v: int, value: float) -> None:
        row, col = canonical_pair(u, v)
        if row == col:
            raise ValueError(f"self-similarity is not stored (user {row})")
        self._check_index(row)
        self._check_index(col)
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"similarity for ({row}, {col}) must be finite, got {value}")

        cols = self._upper.setdefault(row, {})
        if col not in cols:
            self._count += 1
            self._lower.setdefault(col, set()).add(row)
        cols[col] = value

    def get(self, u: int, v: int) -> float | None:
        row, col = canonical_pair(u, v)
        return self._upper.get(row, {}).get(col)

    def __contains__(self, pair: object) -> bool:
        if not isinstance(pair, tuple) or len(pair) != 2:
            return False
        return self.get(*pair) is not None

    def __len__(self) -> int:
        return self._count

    def row(self, u: int) -> dict[int, float]:
        """All users with a known similarity to `u`."""
        u = int(u)
        out = dict(self._upper.get(u, {}))
        for r in self._lower.get(u, ()):
            out[r] = self._upper[r][u]
        return out

    def items(self) -> Iterator[tuple[tuple[int, int], float]]:
        """((row, col), similarity) in ascending key order."""
        for row in sorted(self._upper):
            cols = self._upper[row]
            for col in sorted(cols):
                yield (row, col), cols[col]

    def update(self, entries: dict[tuple[int, int], float]) -> None:
        for (u, v), value in entries.items():
            self.set(u, v, value)
