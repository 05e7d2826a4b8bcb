"""
database/models.py
SQLModel table definitions for persisting agent state, estimates, trades,
cycle reports and balance history.

The strategy core never imports this module; app/services/state_store.py
maps between these rows and the core types.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field

from core.types import AgentStatus, MarketCategory, Side


def _utcnow() -> datetime:
    """Timezone-aware UTC now (replaces the deprecated utcnow call)."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# AgentStateRecord: single-row survival state
# ---------------------------------------------------------------------------

class AgentStateRecord(SQLModel, table=True):
    """The persisted AgentState. Always row id 1."""

    id: Optional[int] = Field(default=None, primary_key=True)

    bankroll: float
    peak_bankroll: float
    total_pnl: float = 0.0
    total_api_costs: float = 0.0
    total_commissions: float = 0.0

    cycle_count: int = 0
    trades_placed: int = 0
    trades_won: int = 0
    trades_lost: int = 0

    status: AgentStatus = AgentStatus.ALIVE
    version: int = 0

    start_time: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# EstimateRecord: every estimate, later joined with its outcome
# ---------------------------------------------------------------------------

class EstimateRecord(SQLModel, table=True):
    """A logged fair-value estimate; actual_outcome is filled on resolution."""

    id: Optional[int] = Field(default=None, primary_key=True)

    market_id: str = Field(index=True)
    category: MarketCategory
    market_price: float

    probability: float
    confidence: float
    rationale: str = ""
    data_sources: str = "[]"          # JSON list of source identifiers

    actual_outcome: Optional[bool] = None

    created_at: datetime = Field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# TradeRecord: an approved bet handed to the executor
# ---------------------------------------------------------------------------

class TradeRecord(SQLModel, table=True):
    """An approved BetDecision; P&L is filled when the market resolves."""

    id: Optional[int] = Field(default=None, primary_key=True)

    cycle_number: int = Field(index=True)
    market_id: str = Field(index=True)
    category: MarketCategory
    side: Side

    amount: float
    price: float
    edge: float
    kelly_fraction: float
    kelly_multiplier: float
    confidence: float

    pnl: Optional[float] = None
    resolved: bool = False

    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# CycleReportRecord: per-cycle summary
# ---------------------------------------------------------------------------

class CycleReportRecord(SQLModel, table=True):
    """One row per closed cycle."""

    id: Optional[int] = Field(default=None, primary_key=True)

    cycle_number: int = Field(index=True)
    markets_evaluated: int
    edges_found: int
    bets_placed: int
    cycle_cost: float
    cycle_pnl: float
    bankroll_after: float
    status: AgentStatus

    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# BalanceSnapshot: bankroll time series
# ---------------------------------------------------------------------------

class BalanceSnapshot(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    bankroll: float
    total_pnl: float
    recorded_at: datetime = Field(default_factory=_utcnow)
