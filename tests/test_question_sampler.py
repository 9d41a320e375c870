"""Tests for question sampling."""

import pytest

from exam_hall.core.errors import ValidationError
from exam_hall.core.services.question_sampler import QuestionSampler

POOL = [f"q{index}" for index in range(20)]


class TestQuestionSampler:
    """Test size bounds, distinctness and seeding."""

    def test_returns_requested_number_of_distinct_ids(self):
        """Sampling draws without replacement."""
        sampled = QuestionSampler(seed=1).sample(POOL, 10)

        assert len(sampled) == 10
        assert len(set(sampled)) == 10
        assert set(sampled) <= set(POOL)

    def test_small_pool_returns_everything(self):
        """Asking for 10 out of 5 returns all 5."""
        sampled = QuestionSampler(seed=1).sample(POOL[:5], 10)

        assert sorted(sampled) == sorted(POOL[:5])

    def test_duplicate_pool_entries_are_collapsed(self):
        sampled = QuestionSampler(seed=1).sample(["a", "a", "b"], 5)

        assert sorted(sampled) == ["a", "b"]

    def test_same_seed_same_sample(self):
        """Seeded samplers are reproducible."""
        assert QuestionSampler(seed=42).sample(POOL, 5) == QuestionSampler(seed=42).sample(POOL, 5)

    def test_set_seed_resets_sequence(self):
        sampler = QuestionSampler()
        sampler.set_seed(3)
        first = sampler.sample(POOL, 5)
        sampler.set_seed(3)

        assert sampler.sample(POOL, 5) == first

    @pytest.mark.parametrize("size", [0, -3])
    def test_non_positive_size_is_rejected(self, size):
        with pytest.raises(ValidationError):
            QuestionSampler().sample(POOL, size)
