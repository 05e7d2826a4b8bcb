"""
app/services/strategy_orchestrator.py
One decision cycle: estimates -> edges -> sized bets -> risk-vetted selection.

Pure function of its inputs. Reads a single AgentSnapshot for the whole
cycle and never writes AgentState; reconciliation is the Accountant's job.
Correlated markets are not clustered here. A correlation filter would slot
in between ranking and risk vetting.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from app.services.edge_detector import detect_edge
from app.services.kelly_sizer import size_bet
from app.services.risk_manager import ExposureBook, RejectionReason, RiskManager
from core.config import StrategyConfig
from core.types import AgentSnapshot, AgentState, BetDecision, Estimate, Market

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    COMPLETED = "completed"     # batch processed (possibly with zero edges)
    EMPTY = "empty"             # no estimates at all; upstream failure
    HALTED = "halted"           # agent not alive


class AuditStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NO_EDGE = "no_edge"
    NO_ESTIMATE = "no_estimate"


@dataclass(frozen=True)
class AuditEntry:
    """What happened to one market this cycle."""
    market_id: str
    status: AuditStatus
    reason: RejectionReason | None = None
    edge: float = 0.0
    requested_amount: float = 0.0
    approved_amount: float = 0.0
    rank: int | None = None             # position in the risk queue
    notes: tuple[str, ...] = ()


@dataclass
class CycleResult:
    outcome: CycleOutcome
    approved: list[BetDecision] = field(default_factory=list)
    audit: list[AuditEntry] = field(default_factory=list)
    markets_evaluated: int = 0
    edges_found: int = 0
    state_version: int = 0

    @property
    def total_committed(self) -> float:
        return sum(d.bet_amount for d in self.approved)

    @property
    def rejected(self) -> list[AuditEntry]:
        return [a for a in self.audit if a.status == AuditStatus.REJECTED]


def rank_key(decision: BetDecision) -> tuple[float, float, str]:
    """Higher edge × confidence first, then deeper liquidity, then market id."""
    return (
        -(decision.edge * decision.confidence),
        -decision.market.liquidity,
        decision.market_id,
    )


def run_cycle(
    batch: Sequence[tuple[Market, Estimate | None]],
    state: AgentState | AgentSnapshot,
    config: StrategyConfig | None = None,
    open_exposure: ExposureBook | None = None,
) -> CycleResult:
    """
    Process one fully materialised batch of (market, estimate) pairs.

    Parameters
    ----------
    batch : Sequence[tuple[Market, Estimate | None]]
        Markets with their estimate, or None where estimation failed.
    state : AgentState | AgentSnapshot
        Current agent state; only a snapshot of it is read.
    config : StrategyConfig | None
        Strategy configuration; defaults apply when omitted.
    open_exposure : ExposureBook | None
        Exposure from positions opened in earlier cycles. Not mutated.

    Returns
    -------
    CycleResult
        Approved decisions in rank order plus an audit entry per market.
    """
    config = config or StrategyConfig()
    snapshot = state.snapshot() if isinstance(state, AgentState) else state

    if not snapshot.is_alive:
        logger.warning("Cycle halted: agent status is %s", snapshot.status.value)
        return CycleResult(outcome=CycleOutcome.HALTED, state_version=snapshot.version)

    if not batch or all(estimate is None for _, estimate in batch):
        logger.warning("Empty cycle: no estimates in batch of %d markets", len(batch))
        return CycleResult(
            outcome=CycleOutcome.EMPTY,
            markets_evaluated=len(batch),
            state_version=snapshot.version,
            audit=[AuditEntry(market_id=m.id, status=AuditStatus.NO_ESTIMATE) for m, _ in batch],
        )

    audit: list[AuditEntry] = []
    candidates: list[BetDecision] = []

    # --- Detect & size ---
    for market, estimate in batch:
        if estimate is None:
            audit.append(AuditEntry(market_id=market.id, status=AuditStatus.NO_ESTIMATE))
            continue
        edge = detect_edge(market, estimate, config.edge)
        if edge is None:
            audit.append(AuditEntry(market_id=market.id, status=AuditStatus.NO_EDGE))
            continue
        candidates.append(size_bet(edge, snapshot.bankroll, config.kelly))

    candidates.sort(key=rank_key)

    # --- Vet in rank order against one book ---
    risk = RiskManager(config.risk)
    book = open_exposure.for_new_cycle() if open_exposure is not None else ExposureBook()
    approved: list[BetDecision] = []

    for rank, decision in enumerate(candidates):
        if book.approved_this_cycle >= config.risk.max_bets_per_cycle:
            audit.append(AuditEntry(
                market_id=decision.market_id,
                status=AuditStatus.REJECTED,
                reason=RejectionReason.CYCLE_CAP_REACHED,
                edge=decision.edge,
                requested_amount=decision.bet_amount,
                rank=rank,
            ))
            continue

        verdict = risk.evaluate(decision, snapshot, book)
        if verdict.approved:
            book.record(verdict.decision)
            approved.append(verdict.decision)
        audit.append(AuditEntry(
            market_id=decision.market_id,
            status=AuditStatus.APPROVED if verdict.approved else AuditStatus.REJECTED,
            reason=verdict.reason,
            edge=decision.edge,
            requested_amount=verdict.requested_amount,
            approved_amount=verdict.approved_amount,
            rank=rank,
            notes=verdict.adjustments,
        ))

    logger.info(
        "Cycle complete: markets=%d edges=%d approved=%d committed=$%.2f bankroll=$%.2f",
        len(batch), len(candidates), len(approved),
        sum(d.bet_amount for d in approved), snapshot.bankroll,
    )
    return CycleResult(
        outcome=CycleOutcome.COMPLETED,
        approved=approved,
        audit=audit,
        markets_evaluated=len(batch),
        edges_found=len(candidates),
        state_version=snapshot.version,
    )
