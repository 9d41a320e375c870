"""Draws the fixed question set for an exam when it starts."""

from __future__ import annotations

import random
from typing import Sequence

from exam_hall.core.errors import ValidationError


class QuestionSampler:
    """Uniform sampling without replacement over the question bank."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def set_seed(self, seed: int | None) -> None:
        self._rng.seed(seed)

    def sample(self, pool_ids: Sequence[str], size: int) -> list[str]:
        """Return ``size`` distinct ids, or the whole pool (shuffled) when it is smaller."""
        if size <= 0:
            raise ValidationError("Number of questions must be at least 1.")
        unique_pool = list(dict.fromkeys(pool_ids))
        return self._rng.sample(unique_pool, min(size, len(unique_pool)))
