"""
app/services/risk_manager.py
Portfolio-level vetting of sized bets.

Checks run in a fixed order and the first failure rejects:

    1. liquidity
    2. per-market cap (re-clamp)
    3. category exposure cap (shrink to headroom, or reject)
    4. total exposure cap (shrink to headroom, or reject)
    5. drawdown tier rescale, then re-validate caps and minimum bet
    6. open-position and per-cycle count caps

Cap checks happen before the drawdown rescale and are re-validated after it,
so no approved amount can push cumulative exposure past a limit.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from core.config import DrawdownTier, RiskConfig
from core.types import AgentSnapshot, BetDecision, MarketCategory

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    LOW_LIQUIDITY = "low_liquidity"
    BELOW_MINIMUM_BET = "below_minimum_bet"
    CATEGORY_CAP_EXCEEDED = "category_cap_exceeded"
    TOTAL_EXPOSURE_CAP_EXCEEDED = "total_exposure_cap_exceeded"
    MAX_POSITIONS_REACHED = "max_positions_reached"
    CYCLE_CAP_REACHED = "cycle_cap_reached"


# ---------------------------------------------------------------------------
# Exposure accumulators
# ---------------------------------------------------------------------------

@dataclass
class ExposureBook:
    """Dollar exposure already committed, plus approvals made this cycle."""
    total: float = 0.0
    by_category: dict[MarketCategory, float] = field(default_factory=dict)
    open_positions: int = 0
    approved_this_cycle: int = 0

    @classmethod
    def from_open_positions(cls, decisions: list[BetDecision]) -> "ExposureBook":
        """Seed a book from positions that are still open from earlier cycles."""
        book = cls()
        for d in decisions:
            book.total += d.bet_amount
            book.by_category[d.category] = book.by_category.get(d.category, 0.0) + d.bet_amount
            book.open_positions += 1
        return book

    def category(self, category: MarketCategory) -> float:
        return self.by_category.get(category, 0.0)

    def for_new_cycle(self) -> "ExposureBook":
        """Independent copy with the per-cycle approval counter reset."""
        return ExposureBook(
            total=self.total,
            by_category=dict(self.by_category),
            open_positions=self.open_positions,
            approved_this_cycle=0,
        )

    def record(self, decision: BetDecision) -> None:
        """Commit an approved decision to the book."""
        self.total += decision.bet_amount
        self.by_category[decision.category] = self.category(decision.category) + decision.bet_amount
        self.open_positions += 1
        self.approved_this_cycle += 1


@dataclass(frozen=True)
class RiskVerdict:
    """Outcome of vetting one decision. Rejections carry a zero-amount decision."""
    decision: BetDecision
    approved: bool
    requested_amount: float
    reason: RejectionReason | None = None
    tier: DrawdownTier | None = None
    adjustments: tuple[str, ...] = ()

    @property
    def approved_amount(self) -> float:
        return self.decision.bet_amount if self.approved else 0.0


def select_tier(ratio: float, tiers: tuple[DrawdownTier, ...]) -> DrawdownTier:
    """First tier (loosest to tightest) whose floor the bankroll/peak ratio meets."""
    for tier in tiers:
        if ratio >= tier.min_ratio:
            return tier
    return tiers[-1]


# ---------------------------------------------------------------------------
# Risk manager
# ---------------------------------------------------------------------------

class RiskManager:
    """
    Stateless vetting against a RiskConfig.

    The caller owns the ExposureBook and records approvals into it; evaluate()
    only reads the book and the snapshot.
    """

    def __init__(self, config: RiskConfig | None = None) -> None:
        self.config = config or RiskConfig()

    def evaluate(
        self,
        decision: BetDecision,
        snapshot: AgentSnapshot,
        book: ExposureBook,
    ) -> RiskVerdict:
        cfg = self.config
        requested = decision.bet_amount
        bankroll = snapshot.bankroll
        amount = requested
        notes: list[str] = []

        def reject(reason: RejectionReason, tier: DrawdownTier | None = None) -> RiskVerdict:
            logger.info(
                "Risk REJECTED %s: %s (requested=$%.2f bankroll=$%.2f)",
                decision.market_id, reason.value, requested, bankroll,
            )
            return RiskVerdict(
                decision=replace(decision, bet_amount=0.0),
                approved=False,
                requested_amount=requested,
                reason=reason,
                tier=tier,
                adjustments=tuple(notes),
            )

        # --- 1. Liquidity ---
        if decision.market.liquidity < cfg.min_liquidity:
            return reject(RejectionReason.LOW_LIQUIDITY)

        # --- 2. Per-market cap ---
        if bankroll <= 0.0 or amount <= 0.0:
            return reject(RejectionReason.BELOW_MINIMUM_BET)
        market_cap = cfg.max_bet_pct * bankroll
        if amount > market_cap:
            notes.append(f"per-market cap ${amount:.2f} -> ${market_cap:.2f}")
            amount = market_cap

        # --- 3. Category cap ---
        category_headroom = cfg.category_limit(decision.category) * bankroll - book.category(decision.category)
        if category_headroom <= 0.0:
            return reject(RejectionReason.CATEGORY_CAP_EXCEEDED)
        if amount > category_headroom:
            notes.append(f"category cap ${amount:.2f} -> ${category_headroom:.2f}")
            amount = category_headroom

        # --- 4. Total exposure cap ---
        total_headroom = cfg.max_exposure_pct * bankroll - book.total
        if total_headroom <= 0.0:
            return reject(RejectionReason.TOTAL_EXPOSURE_CAP_EXCEEDED)
        if amount > total_headroom:
            notes.append(f"total exposure cap ${amount:.2f} -> ${total_headroom:.2f}")
            amount = total_headroom

        # --- 5. Drawdown tier ---
        tier = select_tier(snapshot.bankroll_ratio, cfg.drawdown_tiers)
        multiplier = decision.kelly_multiplier
        if multiplier > 0.0 and tier.multiplier < multiplier:
            scaled = amount * tier.multiplier / multiplier
            notes.append(
                f"{tier.name} tier x{tier.multiplier:.2f} (was x{multiplier:.2f}) "
                f"${amount:.2f} -> ${scaled:.2f}"
            )
            amount = scaled
            multiplier = tier.multiplier

        amount = min(amount, market_cap, category_headroom, total_headroom)
        if amount <= 0.0 or amount < cfg.min_bet:
            return reject(RejectionReason.BELOW_MINIMUM_BET, tier)

        # --- 6. Count caps ---
        if book.open_positions >= cfg.max_open_positions:
            return reject(RejectionReason.MAX_POSITIONS_REACHED, tier)
        if book.approved_this_cycle >= cfg.max_bets_per_cycle:
            return reject(RejectionReason.CYCLE_CAP_REACHED, tier)

        approved = replace(decision, bet_amount=amount, kelly_multiplier=multiplier)
        logger.info(
            "Risk APPROVED %s: $%.2f (requested $%.2f, tier=%s, ratio=%.2f)",
            decision.market_id, amount, requested, tier.name, snapshot.bankroll_ratio,
        )
        return RiskVerdict(
            decision=approved,
            approved=True,
            requested_amount=requested,
            tier=tier,
            adjustments=tuple(notes),
        )
