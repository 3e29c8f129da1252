from __future__ import annotations

import torch
import torch.nn as nn


class SocialMF(nn.Module):
    """Plain MF model: dot(user_factors, item_factors), no biases.

    P (users x factors) and Q (items x factors) live in the embedding weights and
    are updated in place by the social-regularization trainer.
    """

    def __init__(
        self,
        n_users: int,
        n_items: int,
        *,
        num_factors: int = 10,
        init_by_norm: bool = False,
        init_mean: float = 0.0,
        init_std: float = 0.1,
        generator: torch.Generator | None = None,
    ) -> None:
        super().__init__()
        self.user_factors = nn.Embedding(int(n_users), int(num_factors))
        self.item_factors = nn.Embedding(int(n_items), int(num_factors))

        with torch.no_grad():
            for weight in (self.user_factors.weight, self.item_factors.weight):
                if init_by_norm:
                    weight.normal_(mean=float(init_mean), std=float(init_std), generator=generator)
                else:
                    weight.uniform_(0.0, 1.0, generator=generator)

    @property
    def P(self) -> torch.Tensor:
        return self.user_factors.weight

    @property
    def Q(self) -> torch.Tensor:
        return self.item_factors.weight

    def forward(self, user_idx: torch.Tensor, item_idx: torch.Tensor) -> torch.Tensor:
        u = self.user_factors(user_idx)
        v = self.item_factors(item_idx)
        return (u * v).sum(dim=1)
