"""
core/types.py
Domain records shared by the strategy core.

Input records (Market, Estimate, ResolvedMarket, CalibrationPoint) are frozen
pydantic models that clamp probabilities on construction, so nothing out of
range ever reaches the edge detector. In-cycle results (Edge, BetDecision) are
plain dataclasses.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp_unit(value: float) -> float:
    return min(max(value, 0.0), 1.0)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MarketCategory(str, Enum):
    WEATHER = "weather"
    SPORTS = "sports"
    ECONOMICS = "economics"
    POLITICS = "politics"
    CULTURE = "culture"
    OTHER = "other"

    @classmethod
    def parse(cls, label: "str | MarketCategory") -> "MarketCategory":
        """
        Resolve a free-form category label.

        Accepts canonical names case-insensitively plus a few common aliases.
        Unknown labels map to OTHER; this never raises.
        """
        if isinstance(label, cls):
            return label
        key = str(label).strip().lower()
        category = _CATEGORY_ALIASES.get(key)
        if category is None:
            logger.warning("Unknown market category %r, treating as other", label)
            return cls.OTHER
        return category


_CATEGORY_ALIASES: dict[str, MarketCategory] = {
    **{c.value: c for c in MarketCategory},
    "sport": MarketCategory.SPORTS,
    "econ": MarketCategory.ECONOMICS,
    "economic": MarketCategory.ECONOMICS,
    "political": MarketCategory.POLITICS,
    "cultural": MarketCategory.CULTURE,
    "entertainment": MarketCategory.CULTURE,
}


class Side(str, Enum):
    YES = "yes"
    NO = "no"


class AgentStatus(str, Enum):
    ALIVE = "alive"
    DIED = "died"
    PAUSED = "paused"


# ---------------------------------------------------------------------------
# Market & Estimate: caller-owned inputs
# ---------------------------------------------------------------------------

class CrossReferences(BaseModel):
    """Probabilities from auxiliary forecasting sources, when available."""
    model_config = ConfigDict(frozen=True)

    metaculus_prob: float | None = None
    metaculus_forecasters: int | None = None
    manifold_prob: float | None = None
    forecastex_price: float | None = None


class Market(BaseModel):
    """Immutable per-cycle snapshot of a binary market."""
    model_config = ConfigDict(frozen=True)

    id: str
    category: MarketCategory = MarketCategory.OTHER
    price: float = Field(allow_inf_nan=False)          # YES price, 0.0 - 1.0
    liquidity: float = Field(default=0.0, ge=0.0)       # dollars on the book
    volume_24h: float = Field(default=0.0, ge=0.0)
    deadline: datetime | None = None
    question: str = ""
    cross_refs: CrossReferences = Field(default_factory=CrossReferences)

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, v):
        return MarketCategory.parse(v)

    @field_validator("price")
    @classmethod
    def _clamp_price(cls, v: float) -> float:
        return _clamp_unit(v)

    def price_for(self, side: Side) -> float:
        """Cost of one contract on `side`."""
        return self.price if side == Side.YES else 1.0 - self.price


class Estimate(BaseModel):
    """A fair-value probability produced by the estimation collaborator."""
    model_config = ConfigDict(frozen=True)

    probability: float = Field(allow_inf_nan=False)     # P(YES), 0.0 - 1.0
    confidence: float = Field(default=1.0, allow_inf_nan=False)
    rationale: str = ""
    data_sources: tuple[str, ...] = ()

    @field_validator("probability", "confidence")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return _clamp_unit(v)


# ---------------------------------------------------------------------------
# Edge & BetDecision: derived within a single cycle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Edge:
    """A detected mispricing. Never persisted on its own."""
    market: Market
    estimate: Estimate
    side: Side
    signed_edge: float        # estimate - price; sign picks the side
    magnitude: float          # |signed_edge|
    threshold: float          # effective threshold that was cleared

    @property
    def price_for_side(self) -> float:
        return self.market.price_for(self.side)

    @property
    def fair_value(self) -> float:
        """Estimated probability that the chosen side wins."""
        p = self.estimate.probability
        return p if self.side == Side.YES else 1.0 - p

    @property
    def confidence(self) -> float:
        return self.estimate.confidence


@dataclass(frozen=True)
class BetDecision:
    """A sized position; the risk manager returns shrunk copies of it."""
    market: Market
    side: Side
    edge: float               # edge magnitude
    fair_value: float         # P(side wins)
    price: float              # cost per contract on `side`
    decimal_odds: float       # net profit per $1 staked on a win
    raw_kelly_fraction: float
    kelly_multiplier: float
    bet_amount: float
    confidence: float
    rationale: str = ""
    data_sources: tuple[str, ...] = ()

    @property
    def market_id(self) -> str:
        return self.market.id

    @property
    def category(self) -> MarketCategory:
        return self.market.category

    @property
    def expected_value(self) -> float:
        return self.edge * self.bet_amount


# ---------------------------------------------------------------------------
# AgentState: owned by the Accountant
# ---------------------------------------------------------------------------

class AgentSnapshot(BaseModel):
    """Read-only view of AgentState handed to the strategy for one cycle."""
    model_config = ConfigDict(frozen=True)

    bankroll: float
    peak_bankroll: float
    status: AgentStatus
    version: int = 0
    cycle_count: int = 0

    @property
    def is_alive(self) -> bool:
        return self.status == AgentStatus.ALIVE

    @property
    def bankroll_ratio(self) -> float:
        """bankroll / peak; 1.0 when there is no meaningful peak yet."""
        if self.peak_bankroll <= 0:
            return 1.0
        return self.bankroll / self.peak_bankroll


class AgentState(BaseModel):
    """
    The agent's bankroll, counters and survival status.

    Mutated only by app.services.accountant.Accountant; every other component
    works from `snapshot()`.
    """

    bankroll: float
    peak_bankroll: float = 0.0
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

    @model_validator(mode="after")
    def _peak_not_below_bankroll(self) -> "AgentState":
        if self.peak_bankroll < self.bankroll:
            self.peak_bankroll = self.bankroll
        return self

    @property
    def win_rate(self) -> float:
        resolved = self.trades_resolved
        return self.trades_won / resolved if resolved else 0.0

    @property
    def drawdown(self) -> float:
        """Fractional decline from peak (0.0 = at peak)."""
        if self.peak_bankroll <= 0:
            return 0.0
        return max(0.0, 1.0 - self.bankroll / self.peak_bankroll)

    @property
    def total_costs(self) -> float:
        return self.total_api_costs + self.total_commissions

    @property
    def trades_resolved(self) -> int:
        return self.trades_won + self.trades_lost

    @property
    def trades_pending(self) -> int:
        return max(0, self.trades_placed - self.trades_resolved)

    @property
    def is_alive(self) -> bool:
        return self.status == AgentStatus.ALIVE

    def snapshot(self) -> AgentSnapshot:
        return AgentSnapshot(
            bankroll=self.bankroll,
            peak_bankroll=self.peak_bankroll,
            status=self.status,
            version=self.version,
            cycle_count=self.cycle_count,
        )


# ---------------------------------------------------------------------------
# Historical records: backtesting and calibration
# ---------------------------------------------------------------------------

class ResolvedMarket(BaseModel):
    """A market with its realised outcome and, optionally, the estimate made at the time."""
    model_config = ConfigDict(frozen=True)

    market: Market
    actual_outcome: bool | None = None    # True = YES resolved
    estimate: Estimate | None = None
    trade_time: datetime | None = None
    resolution_time: datetime | None = None


class CalibrationPoint(BaseModel):
    """One (prediction, outcome) pair."""
    model_config = ConfigDict(frozen=True)

    predicted: float = Field(allow_inf_nan=False)
    outcome: bool
    category: MarketCategory = MarketCategory.OTHER
    market_id: str = ""
    resolved_at: datetime | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, v):
        return MarketCategory.parse(v)

    @field_validator("predicted")
    @classmethod
    def _clamp_predicted(cls, v: float) -> float:
        return _clamp_unit(v)


def is_probability(value: float) -> bool:
    """Finite and inside [0, 1]."""
    return isinstance(value, (int, float)) and math.isfinite(value) and 0.0 <= value <= 1.0

