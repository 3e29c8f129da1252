from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest

# Ensure `import persrec...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from persrec.data import RatingData, build_rating_data  # noqa: E402


def make_rating_data(
    rows: list[tuple[str, str, float]],
    links: list[tuple[str, str]] | None = None,
) -> RatingData:
    ratings = pd.DataFrame(rows, columns=["user", "item", "rating"])
    social = pd.DataFrame(links, columns=["truster", "trustee"]) if links else None
    return build_rating_data(ratings, social)


@pytest.fixture
def small_data() -> RatingData:
    """Five users (u0..u4) over four items; u4 has a single rating."""
    rows = [
        ("u0", "i0", 5.0), ("u0", "i1", 3.0), ("u0", "i2", 4.0), ("u0", "i3", 1.0),
        ("u1", "i0", 4.0), ("u1", "i1", 2.0), ("u1", "i2", 5.0),
        ("u2", "i0", 1.0), ("u2", "i1", 5.0), ("u2", "i3", 4.0),
        ("u3", "i1", 3.0), ("u3", "i2", 2.0), ("u3", "i3", 5.0),
        ("u4", "i0", 2.0),
    ]
    links = [("u0", "u1"), ("u0", "u2"), ("u1", "u3"), ("u2", "u0"), ("u3", "u4")]
    return make_rating_data(rows, links)


@pytest.fixture
def small_data_without_links(small_data) -> RatingData:
    """Same ratings and index space as `small_data`, empty trust graph."""
    rows = [
        (small_data.users.external(u), small_data.items.external(j), float(r))
        for u, j, r in zip(*small_data.ratings.nonzero(), small_data.ratings.data)
    ]
    return make_rating_data(rows)
