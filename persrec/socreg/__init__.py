"""Social-regularized matrix factorization (SoReg with personality similarity).

Core idea:
- Factorize the rating matrix into user factors P and item factors Q
- Penalize the distance between the factors of users linked in the trust graph
- Weight each link by how similar the two users are (ratings or personality)
"""

from .convergence import ConvergencePolicy, TrainingDivergedError
from .model import SocialMF
from .train import SocialRegularizedTrainer, TrainerState, TrainingHistory

__all__ = [
    "ConvergencePolicy",
    "SocialMF",
    "SocialRegularizedTrainer",
    "TrainerState",
    "TrainingDivergedError",
    "TrainingHistory",
]
