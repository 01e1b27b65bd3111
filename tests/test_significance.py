"""
Tests for mailsplit/services/significance.py - two-proportion Z-test,
normal CDF approximation, lift.
"""
import math
from types import SimpleNamespace

import pytest

from mailsplit.services.significance import (
    MIN_SAMPLE_SIZE,
    NOT_SIGNIFICANT,
    compare_proportions,
    lift,
    normal_cdf,
    round_half_up,
)


def _v(sent, conversions):
    return SimpleNamespace(sent_count=sent, conversion_count=conversions)


class TestNormalCdf:
    def test_zero_is_half(self):
        assert normal_cdf(0.0) == pytest.approx(0.5, abs=1e-7)

    @pytest.mark.parametrize("x", [-3.0, -1.96, -1.0, -0.25, 0.5, 1.0, 1.645, 1.96, 2.576, 4.0])
    def test_matches_erf_within_approximation_error(self, x):
        exact = 0.5 * (1 + math.erf(x / math.sqrt(2)))
        assert normal_cdf(x) == pytest.approx(exact, abs=1e-7)

    def test_symmetric(self):
        assert normal_cdf(-1.3) == pytest.approx(1 - normal_cdf(1.3), abs=1e-12)


class TestRoundHalfUp:
    def test_half_rounds_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(94.5) == 95

    def test_below_half_rounds_down(self):
        assert round_half_up(94.49) == 94


class TestCompareProportions:
    def test_clear_winner(self):
        """20% vs 8% at 500 sends each is overwhelmingly significant."""
        result = compare_proportions(_v(500, 100), _v(500, 40))
        assert result.is_significant is True
        assert result.p_value < 0.001
        assert result.confidence_level >= 99

    def test_insufficient_data_gated(self):
        result = compare_proportions(_v(10, 3), _v(10, 1))
        assert result == NOT_SIGNIFICANT
        assert result.p_value == 1.0
        assert result.confidence_level == 0

    def test_no_practical_difference(self):
        result = compare_proportions(_v(1000, 200), _v(1000, 195))
        assert result.is_significant is False
        assert result.confidence_level < 50
        assert result.p_value == pytest.approx(0.7789, abs=0.002)

    def test_gate_applies_to_either_side(self):
        below = MIN_SAMPLE_SIZE - 1
        assert compare_proportions(_v(below, 20), _v(1000, 10)) == NOT_SIGNIFICANT
        assert compare_proportions(_v(1000, 10), _v(below, 20)) == NOT_SIGNIFICANT

    def test_exactly_min_sample_is_evaluated(self):
        result = compare_proportions(_v(MIN_SAMPLE_SIZE, 25), _v(MIN_SAMPLE_SIZE, 2))
        assert result.is_significant is True

    def test_zero_conversions_both_sides(self):
        """No variance at all - nothing to distinguish."""
        assert compare_proportions(_v(100, 0), _v(100, 0)) == NOT_SIGNIFICANT

    def test_full_conversions_both_sides(self):
        assert compare_proportions(_v(100, 100), _v(200, 200)) == NOT_SIGNIFICANT

    def test_symmetric(self):
        a, b = _v(480, 91), _v(515, 67)
        assert compare_proportions(a, b) == compare_proportions(b, a)

    def test_monotonic_in_leader_conversions(self):
        """Raising the leader's conversions never lowers confidence."""
        baseline = _v(500, 50)
        confidences = [
            compare_proportions(_v(500, conversions), baseline).confidence_level
            for conversions in range(50, 120, 5)
        ]
        assert confidences == sorted(confidences)

    def test_p_value_in_unit_interval(self):
        result = compare_proportions(_v(5000, 4000), _v(5000, 10))
        assert 0.0 <= result.p_value <= 1.0
        assert result.confidence_level == 100

    def test_to_dict(self):
        result = compare_proportions(_v(500, 100), _v(500, 40))
        d = result.to_dict()
        assert set(d) == {"p_value", "confidence_level", "is_significant"}


class TestLift:
    def test_relative_improvement(self):
        assert lift(_v(500, 100), _v(500, 40)) == pytest.approx(1.5)

    def test_negative_lift(self):
        assert lift(_v(100, 10), _v(100, 20)) == pytest.approx(-0.5)

    def test_zero_baseline_is_none(self):
        assert lift(_v(100, 10), _v(100, 0)) is None

    def test_unsent_baseline_is_none(self):
        assert lift(_v(100, 10), _v(0, 0)) is None
