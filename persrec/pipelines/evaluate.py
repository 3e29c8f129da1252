from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

import numpy as np

from ..config import RecConfig, SimilaritySource, load_config, with_overrides
from ..data import IdResolver, build_rating_data, load_ratings, load_social, split_ratings
from ..knn.predictor import KNNPredictor
from ..paths import get_repo_root, resolve_path
from ..profiles import SparseProfileStore, load_profiles
from ..socreg.train import SocialRegularizedTrainer
from ..utils import ReproducibilityConfig, set_global_seed, setup_logging


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train and evaluate a personality-aware recommender on a holdout split.")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--model", choices=("knn", "socreg"), default="knn", help="Which model to train")
    p.add_argument("--perssim", type=str, default=None, help="Override similarity source: profile/rating")
    p.add_argument("--knn", type=int, default=None, help="Override neighbourhood size (0 = unlimited)")
    p.add_argument("--m", type=float, default=None, help="Override KNN shrinkage constant")
    p.add_argument("--beta", type=float, default=None, help="Override social regularization weight")
    p.add_argument("--factors", type=int, default=None, help="Override number of latent factors")
    p.add_argument("--iterations", type=int, default=None, help="Override max training iterations")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--social-links", choices=("out", "both"), default=None, help="Social term link direction")
    p.add_argument("--n-jobs", type=int, default=None, help="Worker threads for the similarity build")
    p.add_argument("--log-level", type=str, default=None, help="Log level (default: $PERSREC_LOG_LEVEL or INFO)")
    return p


def apply_cli_overrides(cfg: RecConfig, args: argparse.Namespace) -> RecConfig:
    cfg = with_overrides(
        cfg,
        "knn",
        perssim=args.perssim if args.model == "knn" else None,
        knn=args.knn,
        m=args.m,
        n_jobs=args.n_jobs,
    )
    cfg = with_overrides(
        cfg,
        "socreg",
        perssim=args.perssim if args.model == "socreg" else None,
        beta=args.beta,
        num_factors=args.factors,
        num_iterations=args.iterations,
        learning_rate=args.lr,
        social_links=args.social_links,
    )
    return cfg


def _maybe_profiles(
    repo_root: Path,
    cfg: RecConfig,
    source: SimilaritySource,
    users: IdResolver,
) -> SparseProfileStore | None:
    if source is not SimilaritySource.PROFILE:
        return None
    if not cfg.dataset.profiles_path:
        raise ValueError("profile-based similarity selected but dataset.profiles_path is not set")
    return load_profiles(
        resolve_path(repo_root, cfg.dataset.profiles_path),
        users,
        columns=cfg.dataset.profile_columns,
    )


def _error_metrics(pred: np.ndarray, truth: np.ndarray) -> dict[str, float]:
    if len(truth) == 0:
        return {"mae": float("nan"), "rmse": float("nan"), "n": 0}
    err = pred - truth
    return {
        "mae": float(np.mean(np.abs(err))),
        "rmse": float(np.sqrt(np.mean(err * err))),
        "n": int(len(truth)),
    }


def run_evaluation(cfg: RecConfig, *, model: str = "knn", repo_root: Path | None = None) -> dict[str, Any]:
    """Fit `model` on the training split and report MAE / RMSE on the test split."""
    repo_root = repo_root if repo_root is not None else get_repo_root()
    ds = cfg.dataset
    set_global_seed(ReproducibilityConfig(seed=int(ds.random_state)))

    ratings = load_ratings(resolve_path(repo_root, ds.ratings_path), sep=ds.sep)
    social = load_social(resolve_path(repo_root, ds.social_path), sep=ds.sep) if ds.social_path else None

    # Index space comes from the full table so test users/items keep their indices.
    users = IdResolver(ratings["user"])
    items = IdResolver(ratings["item"])
    train_df, test_df = split_ratings(ratings, test_size=ds.test_size, random_state=ds.random_state)
    train = build_rating_data(train_df, social, users=users, items=items)

    test_users = users.indices(test_df["user"])
    test_items = items.indices(test_df["item"])
    truth = test_df["rating"].astype(float).to_numpy()

    if model == "knn":
        profiles = _maybe_profiles(repo_root, cfg, cfg.knn.perssim, users)
        predictor = KNNPredictor.from_config(train, cfg.knn, profiles)
        pred = predictor.predict_many(test_users, test_items)
        extra: dict[str, Any] = {"similar_pairs": len(predictor.similarities)}
    elif model == "socreg":
        profiles = _maybe_profiles(repo_root, cfg, cfg.socreg.perssim, users)
        trainer = SocialRegularizedTrainer(train, cfg.socreg, profiles=profiles)
        history = trainer.fit()
        pred = trainer.predict_many(test_users, test_items, bounded=True, cold_start=True)
        extra = {
            "iterations": history.iterations,
            "state": history.state.value,
            "final_loss": history.losses[-1] if history.losses else float("nan"),
            "cached_similarities": len(trainer.cache),
        }
    else:
        raise ValueError(f"Unknown model: {model!r} (expected 'knn' or 'socreg')")

    metrics = {"model": model, **_error_metrics(pred, truth), **extra}
    logger.info("Evaluation: %s", metrics)
    return metrics


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)
    repo_root = get_repo_root()
    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = (repo_root / config_path).resolve()

    cfg = apply_cli_overrides(load_config(config_path), args)
    metrics = run_evaluation(cfg, model=args.model, repo_root=repo_root)

    print("\n=== Holdout Evaluation ===")
    for key, value in metrics.items():
        print(f"{key}: {value}")


if __name__ == "__main__":
    main()
