"""
tests/test_math_utils.py
Tests for the strict numeric kernel: odds, Kelly, Brier, Sharpe, drawdown.
"""

import math

import pytest

from core.math_utils import (
    brier_score,
    decimal_odds,
    kelly_fraction,
    max_drawdown,
    sharpe_ratio,
)


# ---------------------------------------------------------------------------
# decimal_odds
# ---------------------------------------------------------------------------

class TestDecimalOdds:
    def test_forty_cent_contract(self):
        """$0.40 contract pays $1.00 → net 1.5 per $1 staked."""
        assert decimal_odds(0.40) == pytest.approx(1.5)

    def test_even_money(self):
        assert decimal_odds(0.50) == pytest.approx(1.0)

    def test_certain_contract_has_zero_odds(self):
        assert decimal_odds(1.0) == 0.0

    def test_zero_price_raises(self):
        with pytest.raises(ValueError):
            decimal_odds(0.0)

    def test_price_above_one_raises(self):
        with pytest.raises(ValueError):
            decimal_odds(1.2)


# ---------------------------------------------------------------------------
# kelly_fraction
# ---------------------------------------------------------------------------

class TestKellyFraction:
    def test_positive_edge(self):
        """p=0.6 at 0.40 → (1.5·0.6 − 0.4) / 1.5 = 1/3."""
        assert kelly_fraction(0.6, 1.5) == pytest.approx(1 / 3)

    def test_no_edge_clamped_to_zero(self):
        assert kelly_fraction(0.3, 1.0) == 0.0

    def test_fair_bet_is_zero(self):
        assert kelly_fraction(0.5, 1.0) == pytest.approx(0.0)

    def test_certain_win(self):
        assert kelly_fraction(1.0, 0.5) == pytest.approx(1.0)

    def test_invalid_probability_raises(self):
        with pytest.raises(ValueError):
            kelly_fraction(1.5, 1.0)

    def test_non_positive_odds_raises(self):
        with pytest.raises(ValueError):
            kelly_fraction(0.6, 0.0)


# ---------------------------------------------------------------------------
# brier_score
# ---------------------------------------------------------------------------

class TestBrierScore:
    def test_perfect_predictions(self):
        assert brier_score([1.0, 0.0], [True, False]) == 0.0

    def test_coin_flip_is_quarter(self):
        assert brier_score([0.5, 0.5], [True, False]) == pytest.approx(0.25)

    def test_known_value(self):
        """(0.7−1)² = 0.09 and (0.2−0)² = 0.04 → mean 0.065."""
        assert brier_score([0.7, 0.2], [True, False]) == pytest.approx(0.065)

    def test_empty_is_none(self):
        assert brier_score([], []) is None

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            brier_score([0.5], [True, False])

    def test_out_of_range_prediction_raises(self):
        with pytest.raises(ValueError):
            brier_score([1.2], [True])


# ---------------------------------------------------------------------------
# sharpe_ratio
# ---------------------------------------------------------------------------

class TestSharpeRatio:
    def test_too_few_returns(self):
        assert sharpe_ratio([0.05]) == 0.0
        assert sharpe_ratio([]) == 0.0

    def test_flat_series(self):
        assert sharpe_ratio([0.01, 0.01, 0.01]) == 0.0

    def test_known_value(self):
        """mean 0.02, sample std 0.02 → 1.0 per period, × sqrt(4) annualised."""
        returns = [0.0, 0.02, 0.04]
        assert sharpe_ratio(returns, periods_per_year=4) == pytest.approx(2.0)

    def test_negative_mean_is_negative(self):
        assert sharpe_ratio([-0.01, -0.03, 0.0]) < 0

    def test_invalid_periods_raises(self):
        with pytest.raises(ValueError):
            sharpe_ratio([0.1, 0.2], periods_per_year=0)


# ---------------------------------------------------------------------------
# max_drawdown
# ---------------------------------------------------------------------------

class TestMaxDrawdown:
    def test_empty(self):
        assert max_drawdown([]) == (0.0, 0.0)

    def test_monotonic_rise(self):
        assert max_drawdown([100, 110, 120]) == (0.0, 0.0)

    def test_peak_to_trough(self):
        """Peak 120, trough 90 → $30, 25%."""
        amount, pct = max_drawdown([100, 120, 100, 90, 130])
        assert amount == pytest.approx(30.0)
        assert pct == pytest.approx(0.25)

    def test_total_loss(self):
        amount, pct = max_drawdown([50, 0])
        assert amount == pytest.approx(50.0)
        assert math.isclose(pct, 1.0)
