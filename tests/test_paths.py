from __future__ import annotations

from pathlib import Path

from persrec.paths import get_repo_root, resolve_path


def test_resolve_path_keeps_absolute_and_joins_relative(tmp_path) -> None:
    assert resolve_path(tmp_path, "data/raw") == (tmp_path / "data" / "raw").resolve()
    absolute = (tmp_path / "elsewhere").resolve()
    assert resolve_path(Path("/unused"), absolute) == absolute


def test_repo_root_found_from_nested_directory(tmp_path, monkeypatch) -> None:
    (tmp_path / "config.yaml").write_text("{}\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)
    assert get_repo_root() == tmp_path.resolve()


def test_repo_root_accepts_explicit_start_and_pyproject_marker(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n")
    data_file = tmp_path / "data" / "ratings.txt"
    data_file.parent.mkdir()
    data_file.write_text("1 1 5\n")
    assert get_repo_root(data_file) == tmp_path.resolve()
    assert get_repo_root(str(tmp_path / "data")) == tmp_path.resolve()
