from __future__ import annotations

import logging
import math
from dataclasses import dataclass


logger = logging.getLogger(__name__)


class TrainingDivergedError(RuntimeError):
    """Loss became NaN or infinite; the current settings do not fit the data."""


@dataclass
class ConvergencePolicy:
    """Per-iteration stop decision and learning-rate schedule.

    Converged once |last_loss - loss| < tolerance. Optional bold driver grows the
    learning rate by 5% while loss falls and halves it otherwise; `decay` in (0, 1)
    multiplies it every iteration instead. `max_learning_rate > 0` caps it.
    """

    tolerance: float = 1e-5
    bold_driver: bool = False
    decay: float = 0.0
    max_learning_rate: float = 0.0

    def __post_init__(self) -> None:
        self.last_loss = 0.0

    def reset(self) -> None:
        self.last_loss = 0.0

    def check(self, iteration: int, loss: float, learning_rate: float) -> tuple[bool, float]:
        """Return (converged, learning rate for the next iteration)."""
        if math.isnan(loss) or math.isinf(loss):
            raise TrainingDivergedError(
                f"loss={loss} at iteration {iteration}: settings do not fit the recommender"
            )

        delta = self.last_loss - loss
        logger.debug("iter=%d loss=%.6f delta_loss=%.6f lr=%.6g", iteration, loss, delta, learning_rate)

        if self.bold_driver and iteration > 1:
            learning_rate = learning_rate * 1.05 if abs(self.last_loss) > abs(loss) else learning_rate * 0.5
        elif 0.0 < self.decay < 1.0:
            learning_rate *= self.decay

        if self.max_learning_rate > 0 and learning_rate > self.max_learning_rate:
            learning_rate = self.max_learning_rate

        self.last_loss = loss
        return abs(delta) < self.tolerance, learning_rate
