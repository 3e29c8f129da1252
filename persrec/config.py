"""YAML-backed configuration for the KNN and social-regularization models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal

import yaml


class SimilaritySource(enum.Enum):
    """Which signal a user-user similarity is computed from."""

    RATING = "rating"
    PROFILE = "profile"

    @classmethod
    def parse(cls, value: "str | SimilaritySource") -> "SimilaritySource":
        if isinstance(value, SimilaritySource):
            return value
        text = str(value).strip().lower()
        # Legacy spelling: "Y" meant "use personality similarity".
        if text in {"profile", "profile-based", "personality", "y", "yes", "true"}:
            return cls.PROFILE
        if text in {"rating", "rating-based", "ratings", "n", "no", "false"}:
            return cls.RATING
        raise ValueError(f"Unknown similarity source: {value!r} (expected 'profile' or 'rating')")


SocialLinks = Literal["out", "both"]


@dataclass(frozen=True)
class DatasetConfig:
    ratings_path: str = "data/raw/ratings.txt"
    social_path: str | None = "data/raw/trust.txt"
    profiles_path: str | None = "data/raw/personality.txt"
    sep: str = r"[ ,\t]+"
    profile_columns: tuple[int, ...] = (5, 6, 7, 8, 9)
    test_size: float = 0.2
    random_state: int = 42


@dataclass(frozen=True)
class KNNConfig:
    knn: int = 50
    perssim: SimilaritySource = SimilaritySource.RATING
    m: float = 10.0
    n_jobs: int = 1


@dataclass(frozen=True)
class SocialRegConfig:
    num_factors: int = 10
    learning_rate: float = 0.01
    num_iterations: int = 100
    reg_u: float = 0.001
    reg_i: float = 0.001
    beta: float = 0.01
    perssim: SimilaritySource = SimilaritySource.RATING
    social_links: SocialLinks = "out"
    shrinkage: int = 0
    init_by_norm: bool = False
    init_mean: float = 0.0
    init_std: float = 0.1
    seed: int = 42
    min_rating: float = 1.0
    max_rating: float = 5.0
    # convergence
    tolerance: float = 1e-5
    bold_driver: bool = False
    decay: float = 0.0
    max_learning_rate: float = 0.0


@dataclass(frozen=True)
class RecConfig:
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    knn: KNNConfig = field(default_factory=KNNConfig)
    socreg: SocialRegConfig = field(default_factory=SocialRegConfig)


def _section(cfg_yaml: dict[str, Any], name: str) -> dict[str, Any]:
    raw = cfg_yaml.get(name, {})
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"config section {name!r} must be a mapping, got {type(raw).__name__}")
    return raw


_TRUE = {"true", "yes", "y", "on", "1"}
_FALSE = {"false", "no", "n", "off", "0"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Expected a boolean, got {value!r}")


def _build(cls: type, raw: dict[str, Any]) -> Any:
    """Instantiate a config dataclass from the keys it knows, coercing types from the defaults."""
    defaults = cls()
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in raw:
            continue
        value = raw[f.name]
        default = getattr(defaults, f.name)
        if isinstance(default, SimilaritySource):
            value = SimilaritySource.parse(value)
        elif isinstance(default, bool):
            value = _parse_bool(value)
        elif isinstance(default, int):
            value = int(value)
        elif isinstance(default, float):
            value = float(value)
        elif isinstance(default, tuple):
            value = tuple(int(v) for v in value)
        kwargs[f.name] = value
    return cls(**kwargs)


def config_from_mapping(cfg_yaml: dict[str, Any]) -> RecConfig:
    if not isinstance(cfg_yaml, dict):
        raise ValueError(f"config must be a mapping, got {type(cfg_yaml).__name__}")

    cfg = RecConfig(
        dataset=_build(DatasetConfig, _section(cfg_yaml, "dataset")),
        knn=_build(KNNConfig, _section(cfg_yaml, "knn")),
        socreg=_build(SocialRegConfig, _section(cfg_yaml, "socreg")),
    )
    validate_config(cfg)
    return cfg


def load_config(path: Path) -> RecConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    obj = yaml.safe_load(path.read_text())
    if obj is None:
        obj = {}
    return config_from_mapping(obj)


def validate_config(cfg: RecConfig) -> None:
    if cfg.knn.knn < 0:
        raise ValueError(f"knn must be >= 0 (0 = unlimited), got {cfg.knn.knn}")
    if cfg.knn.m < 0:
        raise ValueError(f"m must be >= 0, got {cfg.knn.m}")
    if cfg.socreg.num_factors < 1:
        raise ValueError(f"num_factors must be >= 1, got {cfg.socreg.num_factors}")
    if cfg.socreg.num_iterations < 1:
        raise ValueError(f"num_iterations must be >= 1, got {cfg.socreg.num_iterations}")
    if cfg.socreg.social_links not in ("out", "both"):
        raise ValueError(f"social_links must be 'out' or 'both', got {cfg.socreg.social_links!r}")
    if not 0.0 < cfg.dataset.test_size < 1.0:
        raise ValueError(f"test_size must be in (0, 1), got {cfg.dataset.test_size}")


def with_overrides(cfg: RecConfig, section: str, **overrides: Any) -> RecConfig:
    """Return a copy of `cfg` with non-None `overrides` applied to one section."""
    values = {k: v for k, v in overrides.items() if v is not None}
    if not values:
        return cfg
    current = getattr(cfg, section)
    merged = {f.name: getattr(current, f.name) for f in fields(current)}
    merged.update(values)
    updated = _build(type(current), merged)
    cfg = replace(cfg, **{section: updated})
    validate_config(cfg)
    return cfg
