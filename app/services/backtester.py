"""
app/services/backtester.py
Replays resolved markets through the live strategy pipeline.

Each record is one cycle: run_cycle() against the simulated bankroll, then
immediate settlement from the known outcome through a private Accountant.
The strategy code under test is exactly the code that trades live.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from app.services.accountant import Accountant, CycleSettlement, Resolution
from app.services.kelly_sizer import payout
from app.services.strategy_orchestrator import run_cycle
from core.config import StrategyConfig
from core.constants import INITIAL_BANKROLL, SHARPE_PERIODS_PER_YEAR, SURVIVAL_THRESHOLD
from core.math_utils import brier_score, max_drawdown, sharpe_ratio
from core.types import (
    AgentState,
    AgentStatus,
    CalibrationPoint,
    Estimate,
    MarketCategory,
    ResolvedMarket,
    Side,
    is_probability,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Report types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BacktestTrade:
    """Ledger entry for one simulated bet."""
    market_id: str
    category: MarketCategory
    side: Side
    bet_amount: float
    market_price: float        # price paid per contract on `side`
    estimated_probability: float
    edge: float
    outcome: bool              # True = YES resolved
    won: bool
    pnl: float
    bankroll_after: float
    trade_time: datetime | None = None


@dataclass(frozen=True)
class BalancePoint:
    bankroll: float
    timestamp: datetime | None = None


@dataclass
class BacktestReport:
    initial_bankroll: float
    final_bankroll: float
    total_pnl: float = 0.0
    return_pct: float = 0.0
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    brier_score: float | None = None
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    peak_bankroll: float = 0.0
    cycles: int = 0
    survived: bool = True
    balance_history: list[BalancePoint] = field(default_factory=list)
    trade_log: list[BacktestTrade] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    calibration_points: list[CalibrationPoint] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_estimate(
    record: ResolvedMarket,
    estimates: Mapping[str, Estimate] | None,
) -> Estimate | None:
    if estimates is not None and record.market.id in estimates:
        return estimates[record.market.id]
    return record.estimate


def _validate(record: ResolvedMarket, estimate: Estimate | None) -> str | None:
    """Reason the record cannot be replayed, or None if it is usable."""
    if record.actual_outcome is None:
        return "missing outcome"
    if estimate is None:
        return "no estimate"
    if not is_probability(estimate.probability) or not is_probability(estimate.confidence):
        return f"estimate out of bounds ({estimate.probability!r})"
    if not is_probability(record.market.price):
        return f"price out of bounds ({record.market.price!r})"
    return None


def _won(side: Side, outcome: bool) -> bool:
    return (side == Side.YES) == outcome


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def run_backtest(
    markets: Sequence[ResolvedMarket],
    config: StrategyConfig | None = None,
    initial: AgentState | float | None = None,
    estimates: Mapping[str, Estimate] | None = None,
    periods_per_year: int = SHARPE_PERIODS_PER_YEAR,
    survival_threshold: float = SURVIVAL_THRESHOLD,
) -> BacktestReport:
    """
    Replay `markets` in the given (chronological) order.

    Parameters
    ----------
    markets : Sequence[ResolvedMarket]
        Historical markets with outcomes.
    config : StrategyConfig | None
        Strategy under test.
    initial : AgentState | float | None
        Starting state or bankroll; INITIAL_BANKROLL when omitted.
    estimates : Mapping[str, Estimate] | None
        Estimates by market id; these take precedence over estimates attached
        to the records.
    periods_per_year : int
        Cycles per year for annualising the Sharpe ratio.

    Returns
    -------
    BacktestReport
        Performance statistics, ledger and balance history. Malformed records
        are listed in `warnings` and skipped.
    """
    config = config or StrategyConfig()
    if initial is None:
        initial = INITIAL_BANKROLL
    state = initial if isinstance(initial, AgentState) else AgentState(bankroll=float(initial))
    accountant = Accountant(state, survival_threshold=survival_threshold)
    commission = config.kelly.commission_rate

    start_bankroll = state.bankroll
    report = BacktestReport(initial_bankroll=start_bankroll, final_bankroll=start_bankroll)
    report.balance_history.append(BalancePoint(bankroll=start_bankroll))

    # --- Validate once; Brier covers every usable estimate ---
    usable: list[tuple[ResolvedMarket, Estimate]] = []
    for record in markets:
        estimate = _resolve_estimate(record, estimates)
        problem = _validate(record, estimate)
        if problem is not None:
            logger.warning("Backtest skipping %s: %s", record.market.id, problem)
            report.warnings.append(f"{record.market.id}: {problem}")
            continue
        usable.append((record, estimate))
        report.calibration_points.append(CalibrationPoint(
            predicted=estimate.probability,
            outcome=record.actual_outcome,
            category=record.market.category,
            market_id=record.market.id,
            resolved_at=record.resolution_time,
        ))

    report.brier_score = brier_score(
        [p.predicted for p in report.calibration_points],
        [p.outcome for p in report.calibration_points],
    )

    # --- Replay ---
    returns: list[float] = []
    for record, estimate in usable:
        if not accountant.state.is_alive:
            logger.warning(
                "Backtest stopped after %d cycles: agent status %s",
                report.cycles, accountant.state.status.value,
            )
            report.warnings.append(f"stopped: agent {accountant.state.status.value}")
            break

        before = accountant.state.bankroll
        result = run_cycle([(record.market, estimate)], accountant.state, config)

        resolutions: list[Resolution] = []
        pending: list[tuple] = []
        for decision in result.approved:
            won = _won(decision.side, record.actual_outcome)
            pnl = payout(decision, commission) if won else -decision.bet_amount
            resolutions.append(Resolution(market_id=decision.market_id, pnl=pnl, won=won))
            pending.append((decision, won, pnl))

        accountant.close_cycle(CycleSettlement.from_cycle(result, resolutions=resolutions))
        after = accountant.state.bankroll
        report.cycles += 1

        for decision, won, pnl in pending:
            report.trade_log.append(BacktestTrade(
                market_id=decision.market_id,
                category=decision.category,
                side=decision.side,
                bet_amount=decision.bet_amount,
                market_price=decision.price,
                estimated_probability=estimate.probability,
                edge=decision.edge,
                outcome=record.actual_outcome,
                won=won,
                pnl=pnl,
                bankroll_after=after,
                trade_time=record.trade_time,
            ))

        report.balance_history.append(BalancePoint(
            bankroll=after,
            timestamp=record.resolution_time or record.trade_time,
        ))
        if before > 0:
            returns.append((after - before) / before)

    # --- Aggregate ---
    final = accountant.export_state()
    report.final_bankroll = final.bankroll
    report.total_pnl = final.bankroll - start_bankroll
    report.return_pct = report.total_pnl / start_bankroll * 100.0 if start_bankroll > 0 else 0.0
    report.total_trades = len(report.trade_log)
    report.wins = sum(1 for t in report.trade_log if t.won)
    report.losses = report.total_trades - report.wins
    report.win_rate = report.wins / report.total_trades if report.total_trades else 0.0
    report.sharpe_ratio = sharpe_ratio(returns, periods_per_year)
    report.max_drawdown, report.max_drawdown_pct = max_drawdown(
        [p.bankroll for p in report.balance_history]
    )
    report.peak_bankroll = max(p.bankroll for p in report.balance_history)
    report.survived = final.status != AgentStatus.DIED

    logger.info(
        "Backtest: %d records, %d cycles, %d trades, win_rate=%.1f%% pnl=$%.2f (%.1f%%) "
        "sharpe=%.2f max_dd=%.1f%% brier=%s skipped=%d",
        len(markets), report.cycles, report.total_trades, report.win_rate * 100,
        report.total_pnl, report.return_pct, report.sharpe_ratio,
        report.max_drawdown_pct * 100,
        f"{report.brier_score:.4f}" if report.brier_score is not None else "n/a",
        len(report.warnings),
    )
    return report
