"""
tests/test_backtester.py
Tests for historical replay: bankroll evolution, ledger, statistics and
handling of malformed records.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.services.backtester import run_backtest
from core.config import KellyConfig, RiskConfig, StrategyConfig
from core.math_utils import sharpe_ratio
from core.types import AgentState, Estimate, Market, MarketCategory, ResolvedMarket, Side

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _resolved(
    market_id: str,
    outcome: bool | None,
    price: float = 0.40,
    probability: float | None = 0.60,
    confidence: float = 0.9,
    hours: int = 0,
) -> ResolvedMarket:
    market = Market(id=market_id, category=MarketCategory.SPORTS, price=price, liquidity=5_000.0)
    estimate = None if probability is None else Estimate(probability=probability, confidence=confidence)
    return ResolvedMarket(
        market=market,
        actual_outcome=outcome,
        estimate=estimate,
        trade_time=T0 + timedelta(hours=hours),
        resolution_time=T0 + timedelta(hours=hours + 1),
    )


def _flat_five_dollar_config() -> StrategyConfig:
    """Tiny Kelly multiplier so every bet is floored to exactly $5."""
    return StrategyConfig(
        kelly=KellyConfig(kelly_multiplier=0.01, max_bet_pct=0.10, min_bet=5.0),
        risk=RiskConfig(max_bet_pct=0.10, min_bet=5.0),
    )


class TestRunBacktest:
    def test_empty_sequence(self):
        report = run_backtest([], initial=100.0)
        assert report.final_bankroll == 100.0
        assert report.trade_log == []
        assert report.total_trades == 0
        assert report.brier_score is None
        assert report.sharpe_ratio == 0.0
        assert report.max_drawdown == 0.0
        assert [p.bankroll for p in report.balance_history] == [100.0]

    def test_even_money_half_right_breaks_even(self):
        """Ten $5 YES bets at even money, five winners → 50% and zero P&L."""
        markets = [
            _resolved(f"m{i}", outcome=(i % 2 == 0), price=0.50, probability=0.70, hours=i)
            for i in range(10)
        ]
        report = run_backtest(markets, _flat_five_dollar_config(), initial=100.0)
        assert report.total_trades == 10
        assert all(t.bet_amount == pytest.approx(5.0) for t in report.trade_log)
        assert all(t.side == Side.YES for t in report.trade_log)
        assert report.wins == 5
        assert report.losses == 5
        assert report.win_rate == pytest.approx(0.5)
        assert report.total_pnl == pytest.approx(0.0)
        assert report.final_bankroll == pytest.approx(100.0)

    def test_winning_trade_pays_decimal_odds(self):
        report = run_backtest([_resolved("m1", outcome=True)], initial=100.0)
        trade = report.trade_log[0]
        assert trade.bet_amount == pytest.approx(6.0)
        assert trade.pnl == pytest.approx(9.0)
        assert report.final_bankroll == pytest.approx(109.0)
        assert report.return_pct == pytest.approx(9.0)

    def test_losing_trade_costs_stake(self):
        report = run_backtest([_resolved("m1", outcome=False)], initial=100.0)
        assert report.trade_log[0].pnl == pytest.approx(-6.0)
        assert report.final_bankroll == pytest.approx(94.0)
        assert report.max_drawdown == pytest.approx(6.0)
        assert report.max_drawdown_pct == pytest.approx(0.06)

    def test_no_side_wins_on_no_outcome(self):
        report = run_backtest([_resolved("m1", outcome=False, price=0.70, probability=0.45)], initial=100.0)
        trade = report.trade_log[0]
        assert trade.side == Side.NO
        assert trade.won
        assert trade.pnl > 0

    def test_commission_on_winnings(self):
        config = StrategyConfig(kelly=KellyConfig(commission_rate=0.1))
        report = run_backtest([_resolved("m1", outcome=True)], config, initial=100.0)
        assert report.trade_log[0].pnl == pytest.approx(6.0 * 1.5 * 0.9)

    def test_malformed_records_skipped_with_warning(self):
        bad_estimate = Estimate.model_construct(
            probability=float("nan"), confidence=0.9, rationale="", data_sources=()
        )
        markets = [
            _resolved("no-outcome", outcome=None),
            _resolved("no-estimate", outcome=True, probability=None),
            ResolvedMarket(market=Market(id="nan", price=0.4, liquidity=5_000.0),
                           actual_outcome=True, estimate=bad_estimate),
            _resolved("good", outcome=True),
        ]
        report = run_backtest(markets, initial=100.0)
        assert len(report.warnings) == 3
        assert any(w.startswith("no-outcome") for w in report.warnings)
        assert [t.market_id for t in report.trade_log] == ["good"]

    def test_brier_covers_estimates_without_trades(self):
        markets = [
            _resolved("no-edge", outcome=True, probability=0.42),
            _resolved("traded", outcome=False, probability=0.70),
        ]
        report = run_backtest(markets, initial=100.0)
        assert report.total_trades == 1
        assert report.brier_score == pytest.approx(((0.42 - 1) ** 2 + 0.70 ** 2) / 2)
        assert len(report.calibration_points) == 2

    def test_external_estimates_take_precedence(self):
        markets = [_resolved("m1", outcome=True, probability=0.42)]
        report = run_backtest(markets, initial=100.0, estimates={"m1": Estimate(probability=0.60, confidence=0.9)})
        assert report.total_trades == 1

    def test_balance_history_and_sharpe(self):
        markets = [_resolved(f"m{i}", outcome=i != 1, hours=i) for i in range(4)]
        report = run_backtest(markets, initial=100.0, periods_per_year=365)
        balances = [p.bankroll for p in report.balance_history]
        assert len(balances) == 5
        assert balances[0] == 100.0
        returns = [(b - a) / a for a, b in zip(balances, balances[1:])]
        assert report.sharpe_ratio == pytest.approx(sharpe_ratio(returns, 365))
        assert report.peak_bankroll == max(balances)
        assert report.balance_history[1].timestamp == T0 + timedelta(hours=1)

    def test_stops_when_agent_dies(self):
        config = StrategyConfig(
            kelly=KellyConfig(min_bet=0.5),
            risk=RiskConfig(min_bet=0.5),
        )
        markets = [_resolved(f"m{i}", outcome=False, hours=i) for i in range(3)]
        report = run_backtest(markets, config, initial=10.0, survival_threshold=9.5)
        assert report.total_trades == 1
        assert not report.survived
        assert any("stopped" in w for w in report.warnings)

    def test_accepts_initial_state(self):
        state = AgentState(bankroll=100.0, peak_bankroll=250.0)
        report = run_backtest([_resolved("m1", outcome=True)], initial=state)
        # Survival tier: $6 × 0.10 / 0.25
        assert report.trade_log[0].bet_amount == pytest.approx(2.4)
