from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass

import numpy as np
import torch


@dataclass(frozen=True)
class ReproducibilityConfig:
    seed: int = 42
    deterministic: bool = True


LOG_LEVEL_ENV = "PERSREC_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: int | str | None = None) -> logging.Logger:
    """Configure logging for the `persrec` package and return its logger.

    `level` defaults to $PERSREC_LOG_LEVEL, then INFO. The package logger carries the
    level itself, so training and similarity logs follow it even when a host
    application already configured the root logger.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        level = level.strip().upper()

    pkg_logger = logging.getLogger("persrec")
    pkg_logger.setLevel(level)

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    return pkg_logger


def set_global_seed(cfg: ReproducibilityConfig) -> None:
    """Seed python, numpy and torch RNGs.

    Factor initialization draws from torch, the holdout split from numpy.
    """
    random.seed(cfg.seed)
    np.random.seed(cfg.seed)
    torch.manual_seed(cfg.seed)

    if cfg.deterministic:
        torch.use_deterministic_algorithms(True, warn_only=True)

    os.environ["PYTHONHASHSEED"] = str(cfg.seed)
