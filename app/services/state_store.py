"""
app/services/state_store.py
Async persistence adapter between the strategy core and the database.

Stores the AgentState between runs, the estimate/outcome log that feeds the
calibration engine, approved trades, cycle reports and the balance series.
All functions take an AsyncSession and commit their own work.
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from app.services.accountant import CycleReport, Resolution
from core.math_utils import decimal_odds
from core.types import (
    AgentState,
    BetDecision,
    CalibrationPoint,
    Estimate,
    Market,
    MarketCategory,
    Side,
)
from database.models import (
    AgentStateRecord,
    BalanceSnapshot,
    CycleReportRecord,
    EstimateRecord,
    TradeRecord,
)

logger = logging.getLogger(__name__)

_STATE_ROW_ID = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------------------------------------------
# Agent state
# ------------------------------------------------------------------

async def save_agent_state(session: AsyncSession, state: AgentState) -> AgentStateRecord:
    """Upsert the single agent-state row."""
    data = state.model_dump()
    record = await session.get(AgentStateRecord, _STATE_ROW_ID)
    if record is None:
        record = AgentStateRecord(id=_STATE_ROW_ID, **data)
    else:
        for key, value in data.items():
            setattr(record, key, value)
    record.updated_at = _utcnow()

    session.add(record)
    await session.commit()
    await session.refresh(record)
    logger.info(
        "Saved agent state v%d: bankroll=$%.2f status=%s",
        record.version, record.bankroll, record.status.value,
    )
    return record


async def load_agent_state(session: AsyncSession) -> AgentState | None:
    """Restore the persisted AgentState, or None on first run."""
    record = await session.get(AgentStateRecord, _STATE_ROW_ID)
    if record is None:
        return None
    return AgentState(**record.model_dump(exclude={"id", "updated_at"}))


# ------------------------------------------------------------------
# Estimate log
# ------------------------------------------------------------------

async def log_estimate(session: AsyncSession, market: Market, estimate: Estimate) -> EstimateRecord:
    record = EstimateRecord(
        market_id=market.id,
        category=market.category,
        market_price=market.price,
        probability=estimate.probability,
        confidence=estimate.confidence,
        rationale=estimate.rationale,
        data_sources=json.dumps(list(estimate.data_sources)),
    )
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def resolve_estimates(session: AsyncSession, market_id: str, outcome: bool) -> int:
    """Attach the outcome to every open estimate for a market. Returns rows updated."""
    records = (await session.execute(
        select(EstimateRecord).where(
            EstimateRecord.market_id == market_id,
            col(EstimateRecord.actual_outcome).is_(None),
        )
    )).scalars().all()

    now = _utcnow()
    for record in records:
        record.actual_outcome = outcome
        record.resolved_at = now
        session.add(record)
    await session.commit()

    logger.info("Resolved %d estimates for %s: outcome=%s", len(records), market_id, outcome)
    return len(records)


async def load_calibration_points(
    session: AsyncSession,
    category: MarketCategory | None = None,
) -> list[CalibrationPoint]:
    """Resolved estimates as calibration input, oldest resolution first."""
    query = select(EstimateRecord).where(col(EstimateRecord.actual_outcome).is_not(None))
    if category is not None:
        query = query.where(EstimateRecord.category == category)
    query = query.order_by(EstimateRecord.resolved_at, EstimateRecord.id)

    records = (await session.execute(query)).scalars().all()
    return [
        CalibrationPoint(
            predicted=r.probability,
            outcome=r.actual_outcome,
            category=r.category,
            market_id=r.market_id,
            resolved_at=r.resolved_at,
        )
        for r in records
    ]


# ------------------------------------------------------------------
# Trades
# ------------------------------------------------------------------

async def record_trades(
    session: AsyncSession,
    cycle_number: int,
    decisions: list[BetDecision],
) -> list[TradeRecord]:
    records = [
        TradeRecord(
            cycle_number=cycle_number,
            market_id=d.market_id,
            category=d.category,
            side=d.side,
            amount=d.bet_amount,
            price=d.price,
            edge=d.edge,
            kelly_fraction=d.raw_kelly_fraction,
            kelly_multiplier=d.kelly_multiplier,
            confidence=d.confidence,
        )
        for d in decisions
    ]
    session.add_all(records)
    await session.commit()
    for record in records:
        await session.refresh(record)
    return records


async def settle_trades(
    session: AsyncSession,
    market_id: str,
    outcome: bool,
    commission_rate: float = 0.0,
) -> list[Resolution]:
    """
    Close every open trade on a resolved market.

    Returns the Resolutions to hand to the Accountant in the next settlement.
    """
    trades = (await session.execute(
        select(TradeRecord).where(
            TradeRecord.market_id == market_id,
            TradeRecord.resolved == False,  # noqa: E712
        )
    )).scalars().all()

    resolutions = []
    for trade in trades:
        won = (trade.side == Side.YES) == outcome
        if won:
            pnl = trade.amount * decimal_odds(trade.price) * (1.0 - commission_rate)
        else:
            pnl = -trade.amount
        trade.pnl = pnl
        trade.resolved = True
        session.add(trade)
        resolutions.append(Resolution(market_id=market_id, pnl=pnl, won=won))
    await session.commit()

    logger.info("Settled %d trades on %s: outcome=%s", len(resolutions), market_id, outcome)
    return resolutions


# ------------------------------------------------------------------
# Cycle reports & balance history
# ------------------------------------------------------------------

async def record_cycle_report(session: AsyncSession, report: CycleReport) -> CycleReportRecord:
    record = CycleReportRecord(
        cycle_number=report.cycle_number,
        markets_evaluated=report.markets_evaluated,
        edges_found=report.edges_found,
        bets_placed=report.bets_placed,
        cycle_cost=report.cycle_cost,
        cycle_pnl=report.cycle_pnl,
        bankroll_after=report.bankroll_after,
        status=report.status,
    )
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def record_balance(session: AsyncSession, state: AgentState) -> BalanceSnapshot:
    snapshot = BalanceSnapshot(bankroll=state.bankroll, total_pnl=state.total_pnl)
    session.add(snapshot)
    await session.commit()
    await session.refresh(snapshot)
    return snapshot


async def load_balance_history(session: AsyncSession) -> list[BalanceSnapshot]:
    return list((await session.execute(
        select(BalanceSnapshot).order_by(BalanceSnapshot.recorded_at, BalanceSnapshot.id)
    )).scalars().all())
