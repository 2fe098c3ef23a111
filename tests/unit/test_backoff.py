"""
Unit tests for the retry backoff policy.
"""

import pytest

from notifyq.worker.backoff import compute_backoff


class TestComputeBackoff:
    """Tests for compute_backoff."""

    def test_quadratic_in_attempt(self):
        """Test the delay is attempt squared times the base."""
        assert compute_backoff(1, 30.0) == 30.0
        assert compute_backoff(2, 30.0) == 120.0
        assert compute_backoff(3, 30.0) == 270.0

    def test_strictly_increasing(self):
        """Test each delay is longer than the one before it."""
        delays = [compute_backoff(attempt, 0.5) for attempt in range(1, 11)]

        assert all(later > earlier for earlier, later in zip(delays, delays[1:]))

    def test_always_positive(self):
        """Test a positive base always yields a positive delay."""
        assert compute_backoff(1, 0.001) > 0

    @pytest.mark.parametrize("attempt", [0, -1])
    def test_rejects_attempt_below_one(self, attempt: int):
        """Test attempts are 1-indexed."""
        with pytest.raises(ValueError):
            compute_backoff(attempt, 30.0)

    @pytest.mark.parametrize("base", [0, -5.0])
    def test_rejects_non_positive_base(self, base: float):
        """Test the base delay must be positive."""
        with pytest.raises(ValueError):
            compute_backoff(1, base)
