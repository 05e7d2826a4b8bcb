"""
tests/test_strategy_orchestrator.py
Tests for one decision cycle: outcomes, ranking, cycle cap, audit trail
and read-only handling of agent state and open exposure.
"""

import pytest

from app.services.risk_manager import ExposureBook, RejectionReason
from app.services.strategy_orchestrator import AuditStatus, CycleOutcome, run_cycle
from core.config import RiskConfig, StrategyConfig
from core.types import AgentState, AgentStatus, Estimate, Market, MarketCategory, Side


def _pair(
    market_id: str,
    price: float = 0.40,
    probability: float = 0.60,
    confidence: float = 0.9,
    liquidity: float = 5_000.0,
    category: MarketCategory = MarketCategory.SPORTS,
):
    market = Market(id=market_id, category=category, price=price, liquidity=liquidity)
    return market, Estimate(probability=probability, confidence=confidence)


def _config(**risk) -> StrategyConfig:
    return StrategyConfig(risk=RiskConfig(**risk))


class TestCycleOutcomes:
    def test_reference_scenario(self, fresh_state):
        result = run_cycle([_pair("m1")], fresh_state)
        assert result.outcome == CycleOutcome.COMPLETED
        assert len(result.approved) == 1
        bet = result.approved[0]
        assert bet.side == Side.YES
        assert bet.edge == pytest.approx(0.20)
        assert bet.bet_amount == pytest.approx(6.00)
        assert result.audit[0].status == AuditStatus.APPROVED

    def test_no_edge_is_completed_not_empty(self, fresh_state):
        result = run_cycle([_pair("m1", probability=0.42)], fresh_state)
        assert result.outcome == CycleOutcome.COMPLETED
        assert result.approved == []
        assert result.edges_found == 0
        assert result.audit[0].status == AuditStatus.NO_EDGE

    def test_empty_batch(self, fresh_state):
        result = run_cycle([], fresh_state)
        assert result.outcome == CycleOutcome.EMPTY
        assert result.approved == []

    def test_all_estimates_missing_is_empty(self, fresh_state):
        market, _ = _pair("m1")
        result = run_cycle([(market, None)], fresh_state)
        assert result.outcome == CycleOutcome.EMPTY
        assert result.audit[0].status == AuditStatus.NO_ESTIMATE

    def test_missing_estimate_skips_market_only(self, fresh_state):
        market, _ = _pair("m1")
        result = run_cycle([(market, None), _pair("m2")], fresh_state)
        assert result.outcome == CycleOutcome.COMPLETED
        assert [d.market_id for d in result.approved] == ["m2"]
        statuses = {a.market_id: a.status for a in result.audit}
        assert statuses == {"m1": AuditStatus.NO_ESTIMATE, "m2": AuditStatus.APPROVED}

    @pytest.mark.parametrize("status", [AgentStatus.DIED, AgentStatus.PAUSED])
    def test_inactive_agent_halts(self, status):
        state = AgentState(bankroll=100.0, status=status)
        result = run_cycle([_pair("m1")], state)
        assert result.outcome == CycleOutcome.HALTED
        assert result.approved == []


class TestRankingAndCaps:
    def test_higher_conviction_first_and_cycle_cap(self, fresh_state):
        batch = [
            _pair("low", probability=0.50, confidence=1.0),     # 0.10
            _pair("high", probability=0.60, confidence=0.9),    # 0.18
            _pair("mid", probability=0.65, confidence=0.6),     # 0.15
        ]
        result = run_cycle(batch, fresh_state, _config(max_bets_per_cycle=2))
        assert [d.market_id for d in result.approved] == ["high", "mid"]
        passed = [a for a in result.audit if a.market_id == "low"][0]
        assert passed.status == AuditStatus.REJECTED
        assert passed.reason == RejectionReason.CYCLE_CAP_REACHED

    def test_ties_break_on_liquidity_then_id(self, fresh_state):
        batch = [
            _pair("x", liquidity=1_000.0),
            _pair("z", liquidity=1_000.0),
            _pair("y", liquidity=9_000.0),
        ]
        result = run_cycle(batch, fresh_state)
        assert [d.market_id for d in result.approved] == ["y", "x", "z"]

    def test_never_exceeds_cycle_cap(self, fresh_state):
        batch = [_pair(f"m{i}", category=list(MarketCategory)[i % 6]) for i in range(10)]
        result = run_cycle(batch, fresh_state, _config(max_bets_per_cycle=3))
        assert len(result.approved) == 3
        cap_rejections = [a for a in result.rejected if a.reason == RejectionReason.CYCLE_CAP_REACHED]
        assert len(cap_rejections) == 7
        assert len(result.audit) == 10

    def test_first_candidate_claims_category_headroom(self, fresh_state):
        """Category cap $10: the stronger bet gets $6, the next shrinks to $4."""
        batch = [
            _pair("weak", probability=0.55),
            _pair("strong", probability=0.70),
        ]
        result = run_cycle(batch, fresh_state, _config(category_exposure_pct=0.10))
        amounts = {d.market_id: d.bet_amount for d in result.approved}
        assert amounts["strong"] == pytest.approx(6.0)
        assert amounts["weak"] == pytest.approx(4.0)

    def test_open_exposure_counts_against_caps(self, fresh_state):
        open_book = ExposureBook(total=58.0, by_category={MarketCategory.WEATHER: 29.0,
                                                           MarketCategory.POLITICS: 29.0})
        result = run_cycle([_pair("m1")], fresh_state, open_exposure=open_book)
        assert result.approved[0].bet_amount == pytest.approx(2.0)
        assert open_book.total == 58.0


class TestReadOnlyState:
    def test_state_not_mutated(self):
        state = AgentState(bankroll=100.0)
        before = state.model_dump()
        run_cycle([_pair("m1"), _pair("m2")], state)
        assert state.model_dump() == before

    def test_reports_snapshot_version(self):
        state = AgentState(bankroll=100.0, version=7)
        assert run_cycle([_pair("m1")], state).state_version == 7

    def test_accepts_snapshot(self):
        result = run_cycle([_pair("m1")], AgentState(bankroll=100.0).snapshot())
        assert result.outcome == CycleOutcome.COMPLETED
