"""Matrix factorization with similarity-weighted social regularization.

Loss per iteration (halved at the end):
    sum over ratings   w_uj * (P_u . Q_j - r_uj)^2 + regU |P_u|^2 + regI |Q_j|^2
  + sum over links u->k  beta * s(u, k) * |P_u - P_k|^2

s(u, k) is the (1 + pcc) / 2 similarity of the two users' ratings or personality
profiles; links whose similarity is undefined are skipped. Gradients are formed
explicitly over the full training set and applied once per iteration.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import torch

from ..config import SimilaritySource, SocialRegConfig
from ..data import RatingData
from ..profiles import SparseProfileStore
from ..similarity.correlation import PairwiseCorrelationCache
from .convergence import ConvergencePolicy
from .model import SocialMF


logger = logging.getLogger(__name__)


class TrainerState(enum.Enum):
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"


@dataclass
class TrainingHistory:
    losses: list[float] = field(default_factory=list)
    state: TrainerState = TrainerState.INITIALIZED

    @property
    def iterations(self) -> int:
        return len(self.losses)


class SocialRegularizedTrainer:
    def __init__(
        self,
        data: RatingData,
        cfg: SocialRegConfig,
        *,
        profiles: SparseProfileStore | None = None,
        convergence: ConvergencePolicy | None = None,
        cache: PairwiseCorrelationCache | None = None,
    ) -> None:
        source = SimilaritySource.parse(cfg.perssim)
        if source is SimilaritySource.PROFILE and (profiles is None or len(profiles) == 0):
            raise ValueError("profile-based similarity selected but no personality profiles were loaded")
        if cfg.social_links not in ("out", "both"):
            raise ValueError(f"social_links must be 'out' or 'both', got {cfg.social_links!r}")

        self.data = data
        self.cfg = cfg
        self.source = source
        self.cache = cache if cache is not None else PairwiseCorrelationCache(
            data.ratings, profiles, shrinkage=cfg.shrinkage
        )
        self.convergence = convergence if convergence is not None else ConvergencePolicy(
            tolerance=cfg.tolerance,
            bold_driver=cfg.bold_driver,
            decay=cfg.decay,
            max_learning_rate=cfg.max_learning_rate,
        )

        generator = torch.Generator().manual_seed(int(cfg.seed))
        self.model = SocialMF(
            data.num_users,
            data.num_items,
            num_factors=cfg.num_factors,
            init_by_norm=cfg.init_by_norm,
            init_mean=cfg.init_mean,
            init_std=cfg.init_std,
            generator=generator,
        ).double()
        self.model.requires_grad_(False)

        coo = data.ratings.tocoo()
        self._users = torch.as_tensor(coo.row.astype(np.int64))
        self._items = torch.as_tensor(coo.col.astype(np.int64))
        self._ratings = torch.as_tensor(coo.data.astype(np.float64))

        self._user_counts = np.diff(data.ratings.tocsr().indptr)
        self._item_counts = np.diff(data.ratings.tocsc().indptr)

        links = data.social.tocoo()
        self._link_src = links.row.astype(np.int64)
        self._link_dst = links.col.astype(np.int64)

        self.learning_rate = float(cfg.learning_rate)
        self.loss = 0.0
        self.iteration = 0
        self.state = TrainerState.INITIALIZED
        self.history = TrainingHistory()

        logger.info(
            "SocialReg: users=%d items=%d ratings=%d links=%d factors=%d beta=%.4f source=%s links_mode=%s",
            data.num_users,
            data.num_items,
            int(self._ratings.shape[0]),
            int(self._link_src.shape[0]),
            cfg.num_factors,
            cfg.beta,
            self.source.value,
            cfg.social_links,
        )

    @property
    def P(self) -> torch.Tensor:
        return self.model.P

    @property
    def Q(self) -> torch.Tensor:
        return self.model.Q

    def _social_terms(self) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """(user, linked user, similarity) for every link with a defined similarity.

        Out-links pair each truster with the users they trust. With
        `social_links="both"` every link is also used in reverse, so a user is pulled
        towards the users who trust them as well.
        """
        pairs = list(zip(self._link_src.tolist(), self._link_dst.tolist()))
        if self.cfg.social_links == "both":
            pairs += [(k, u) for u, k in pairs]

        src: list[int] = []
        dst: list[int] = []
        weights: list[float] = []
        for u, k in pairs:
            sim = self.cache.similarity(u, k, self.source)
            if not sim.is_defined:
                continue
            src.append(u)
            dst.append(k)
            weights.append(sim.value)
        return (
            torch.as_tensor(src, dtype=torch.long),
            torch.as_tensor(dst, dtype=torch.long),
            torch.as_tensor(weights, dtype=torch.float64),
        )

    def step(self) -> float:
        """Run one full-batch gradient iteration and return its loss."""
        if self.state is TrainerState.INITIALIZED:
            self.state = TrainerState.ITERATING
        cfg = self.cfg
        with torch.no_grad():
            P, Q = self.P, self.Q
            PS = torch.zeros_like(P)
            QS = torch.zeros_like(Q)

            pu = P[self._users]
            qj = Q[self._items]
            err = (pu * qj).sum(dim=1) - self._ratings
            # Implicit indicator: every observed rating >= 1 counts towards the loss.
            weight = (self._ratings >= 1).to(P.dtype)

            loss = (weight * err * err).sum()
            PS.index_add_(0, self._users, err.unsqueeze(1) * qj + cfg.reg_u * pu)
            QS.index_add_(0, self._items, err.unsqueeze(1) * pu + cfg.reg_i * qj)
            loss += (cfg.reg_u * pu * pu + cfg.reg_i * qj * qj).sum()

            src, dst, sims = self._social_terms()
            if src.numel() > 0:
                diff = P[src] - P[dst]
                scaled = cfg.beta * sims.unsqueeze(1)
                PS.index_add_(0, src, scaled * diff)
                loss += (scaled * diff * diff).sum()

            # Gradients are complete before either factor matrix changes.
            P.sub_(self.learning_rate * PS)
            Q.sub_(self.learning_rate * QS)

        self.loss = 0.5 * float(loss)
        self.iteration += 1
        return self.loss

    def fit(self) -> TrainingHistory:
        """Train from the current factors; iteration count and learning rate start over."""
        self.state = TrainerState.ITERATING
        self.iteration = 0
        self.learning_rate = float(self.cfg.learning_rate)
        self.convergence.reset()
        self.history = TrainingHistory(state=self.state)

        for it in range(1, int(self.cfg.num_iterations) + 1):
            loss = self.step()
            self.history.losses.append(loss)
            converged, self.learning_rate = self.convergence.check(it, loss, self.learning_rate)
            logger.info("SocialReg iter=%d loss=%.6f lr=%.6g", it, loss, self.learning_rate)
            if converged:
                self.state = TrainerState.CONVERGED
                break
        else:
            self.state = TrainerState.MAX_ITER_REACHED

        self.history.state = self.state
        logger.info("SocialReg stopped: state=%s iterations=%d loss=%.6f", self.state.value, self.iteration, self.loss)
        return self.history

    def _is_cold(self, u: int, j: int) -> bool:
        return not (
            0 <= u < self._user_counts.shape[0]
            and 0 <= j < self._item_counts.shape[0]
            and self._user_counts[u] > 0
            and self._item_counts[j] > 0
        )

    def predict(self, u: int, j: int, *, bounded: bool = False, cold_start: bool = False) -> float:
        """Dot-product score for (u, j).

        With `cold_start=True`, a user or item without training ratings gets the
        training global mean instead of its untrained factors.
        """
        u, j = int(u), int(j)
        if cold_start and self._is_cold(u, j):
            return float(self.data.global_mean)
        with torch.no_grad():
            score = float(torch.dot(self.P[u], self.Q[j]))
        if bounded:
            score = min(max(score, self.cfg.min_rating), self.cfg.max_rating)
        return score

    def predict_many(
        self,
        users: Sequence[int],
        items: Sequence[int],
        *,
        bounded: bool = False,
        cold_start: bool = False,
    ) -> np.ndarray:
        if len(users) != len(items):
            raise ValueError(f"users/items length mismatch: {len(users)} vs {len(items)}")
        users_arr = np.asarray(users, dtype=np.int64)
        items_arr = np.asarray(items, dtype=np.int64)
        with torch.no_grad():
            scores = self.model(torch.as_tensor(users_arr), torch.as_tensor(items_arr))
            if bounded:
                scores = scores.clamp(min=self.cfg.min_rating, max=self.cfg.max_rating)
        out = scores.cpu().numpy().astype(np.float64)
        if cold_start and out.size:
            cold = (self._user_counts[users_arr] == 0) | (self._item_counts[items_arr] == 0)
            out[cold] = float(self.data.global_mean)
        return out
