from __future__ import annotations

from pathlib import Path

# Files that mark the project root; the evaluation config is looked for first.
ROOT_MARKERS = ("config.yaml", "pyproject.toml", ".git")


def resolve_path(repo_root: Path, path: Path | str) -> Path:
    """Resolve `path` against `repo_root` unless it is already absolute."""
    p = Path(path) if isinstance(path, str) else path
    if not p.is_absolute():
        p = repo_root / p
    return p.resolve()


def _find_root(start: Path) -> Path | None:
    start = start.resolve()
    if start.is_file():
        start = start.parent
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in ROOT_MARKERS):
            return candidate
    return None


def get_repo_root(start: Path | str | None = None) -> Path:
    """Nearest directory at or above `start` (default: cwd) holding a root marker.

    Falls back to searching from the installed package, so the CLI still finds the
    bundled `config.yaml` when run from an unrelated directory.
    """
    root = _find_root(Path(start) if start is not None else Path.cwd())
    if root is None:
        root = _find_root(Path(__file__).parent)
    if root is None:
        raise FileNotFoundError(f"Could not locate repo root (expected one of {', '.join(ROOT_MARKERS)}).")
    return root
