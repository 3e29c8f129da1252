from __future__ import annotations

import numpy as np
import pytest

from persrec.data import IdResolver
from persrec.profiles import SparseProfileStore, load_profiles


def _write(tmp_path, lines: list[str]):
    path = tmp_path / "personality.txt"
    path.write_text("\n".join(lines) + "\n")
    return path


def test_load_profiles_maps_external_ids(tmp_path) -> None:
    path = _write(
        tmp_path,
        [
            "20 x x x x 0.1 0.2 0.3 0.4 0.5",
            "10,x,x,x,x,1.0,2.0,3.0,4.0,5.0",
            "99 x x x x 9 9 9 9 9",
        ],
    )
    resolver = IdResolver(["10", "20", "30"])

    store = load_profiles(path, resolver)

    assert len(store) == 2
    assert store.dim == 5
    np.testing.assert_allclose(store.get(resolver.index("10")), [1.0, 2.0, 3.0, 4.0, 5.0])
    np.testing.assert_allclose(store.get(resolver.index("20")), [0.1, 0.2, 0.3, 0.4, 0.5])
    assert store.get(resolver.index("30")) is None
    assert store.user_ids() == [0, 1]


def test_custom_columns(tmp_path) -> None:
    path = _write(tmp_path, ["7 0.5 0.25"])
    store = load_profiles(path, IdResolver(["7"]), columns=(1, 2))
    assert store.dim == 2
    np.testing.assert_allclose(store.get(0), [0.5, 0.25])


def test_missing_file_is_fatal(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_profiles(tmp_path / "absent.txt", IdResolver(["1"]))


def test_malformed_line_reports_line_number(tmp_path) -> None:
    path = _write(tmp_path, ["1 x x x x 0.1 0.2 0.3 0.4 0.5", "2 x x x x 0.1 oops 0.3 0.4 0.5"])
    with pytest.raises(ValueError, match=":2:"):
        load_profiles(path, IdResolver(["1", "2"]))


def test_short_line_is_malformed(tmp_path) -> None:
    path = _write(tmp_path, ["1 x x 0.1"])
    with pytest.raises(ValueError):
        load_profiles(path, IdResolver(["1"]))


def test_store_rejects_wrong_dimension() -> None:
    store = SparseProfileStore(dim=3)
    with pytest.raises(ValueError):
        store.add(0, [1.0, 2.0])


def test_store_vectors_are_read_only() -> None:
    store = SparseProfileStore(dim=2)
    store.add(3, [1.0, 2.0])
    with pytest.raises(ValueError):
        store.get(3)[0] = 5.0
    assert 3 in store
    assert list(store) == [3]
