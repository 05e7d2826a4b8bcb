"""
app/services/accountant.py
Survival tracker: the single writer of AgentState.

Every mutation builds a complete replacement state and swaps it in at once,
so a cycle is either fully applied or not applied at all. Settlements carry
their cycle number; re-applying one is a logged no-op.

Death (bankroll at or below the survival threshold) is terminal. Bookkeeping
for late resolutions still posts, but the status stays DIED until an operator
calls operator_reset().
"""

import logging
from dataclasses import dataclass, field

from app.services.strategy_orchestrator import CycleResult
from core.constants import SURVIVAL_THRESHOLD
from core.types import AgentSnapshot, AgentState, AgentStatus, BetDecision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """A position that settled: realised P&L (after fees) and whether it won."""
    market_id: str
    pnl: float
    won: bool


@dataclass
class CycleSettlement:
    """Everything that happened to the bankroll during one cycle."""
    cycle_number: int | None = None
    placed: list[BetDecision] = field(default_factory=list)
    resolutions: list[Resolution] = field(default_factory=list)
    api_costs: float = 0.0
    commissions: float = 0.0
    markets_evaluated: int = 0
    edges_found: int = 0

    @classmethod
    def from_cycle(
        cls,
        result: CycleResult,
        cycle_number: int | None = None,
        resolutions: list[Resolution] | None = None,
        api_costs: float = 0.0,
        commissions: float = 0.0,
    ) -> "CycleSettlement":
        return cls(
            cycle_number=cycle_number,
            placed=list(result.approved),
            resolutions=list(resolutions or []),
            api_costs=api_costs,
            commissions=commissions,
            markets_evaluated=result.markets_evaluated,
            edges_found=result.edges_found,
        )


@dataclass(frozen=True)
class CycleReport:
    cycle_number: int
    markets_evaluated: int
    edges_found: int
    bets_placed: int
    cycle_cost: float
    cycle_pnl: float
    bankroll_after: float
    status: AgentStatus


class Accountant:
    """Owns the AgentState; hands everyone else snapshots."""

    def __init__(self, state: AgentState, survival_threshold: float = SURVIVAL_THRESHOLD) -> None:
        self._state = state.model_copy(deep=True)
        self.survival_threshold = survival_threshold

    @property
    def state(self) -> AgentSnapshot:
        return self._state.snapshot()

    def export_state(self) -> AgentState:
        """Detached copy for persistence."""
        return self._state.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def close_cycle(self, settlement: CycleSettlement) -> CycleReport | None:
        """
        Apply one cycle's trades, resolutions and costs.

        Returns None if this cycle number was already applied.
        """
        s = self._state
        number = settlement.cycle_number if settlement.cycle_number is not None else s.cycle_count + 1
        if number <= s.cycle_count:
            logger.warning(
                "Cycle %d already applied (state at cycle %d), ignoring settlement",
                number, s.cycle_count,
            )
            return None

        pnl = sum(r.pnl for r in settlement.resolutions)
        won = sum(1 for r in settlement.resolutions if r.won)
        lost = len(settlement.resolutions) - won
        cost = settlement.api_costs + settlement.commissions
        bankroll = s.bankroll + pnl - cost

        self._swap(
            bankroll=bankroll,
            total_pnl=s.total_pnl + pnl,
            total_api_costs=s.total_api_costs + settlement.api_costs,
            total_commissions=s.total_commissions + settlement.commissions,
            cycle_count=number,
            trades_placed=s.trades_placed + len(settlement.placed),
            trades_won=s.trades_won + won,
            trades_lost=s.trades_lost + lost,
        )

        report = CycleReport(
            cycle_number=number,
            markets_evaluated=settlement.markets_evaluated,
            edges_found=settlement.edges_found,
            bets_placed=len(settlement.placed),
            cycle_cost=cost,
            cycle_pnl=pnl,
            bankroll_after=self._state.bankroll,
            status=self._state.status,
        )
        logger.info(
            "Cycle %d closed: bets=%d pnl=$%.2f cost=$%.2f bankroll=$%.2f status=%s",
            number, report.bets_placed, pnl, cost, report.bankroll_after, report.status.value,
        )
        return report

    def record_costs(self, api_cost: float = 0.0, commission: float = 0.0) -> None:
        """Deduct costs incurred outside a cycle settlement."""
        s = self._state
        self._swap(
            bankroll=s.bankroll - api_cost - commission,
            total_api_costs=s.total_api_costs + api_cost,
            total_commissions=s.total_commissions + commission,
        )

    def pause(self) -> None:
        if self._state.status == AgentStatus.ALIVE:
            self._swap(status=AgentStatus.PAUSED)
            logger.info("Agent paused")

    def resume(self) -> None:
        if self._state.status == AgentStatus.DIED:
            logger.warning("Refusing to resume a dead agent; operator reset required")
            raise RuntimeError("agent has died; use operator_reset() to revive it")
        if self._state.status == AgentStatus.PAUSED:
            self._swap(status=AgentStatus.ALIVE)
            logger.info("Agent resumed")

    def operator_reset(self, bankroll: float) -> None:
        """Explicit operator action: revive the agent with a fresh bankroll."""
        if bankroll <= self.survival_threshold:
            raise ValueError(
                f"reset bankroll {bankroll} must exceed survival threshold {self.survival_threshold}"
            )
        logger.warning(
            "Operator reset: status %s -> alive, bankroll $%.2f -> $%.2f",
            self._state.status.value, self._state.bankroll, bankroll,
        )
        s = self._state
        self._state = s.model_copy(update={
            "bankroll": bankroll,
            "peak_bankroll": bankroll,
            "status": AgentStatus.ALIVE,
            "version": s.version + 1,
        })

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _swap(self, **changes) -> None:
        s = self._state
        bankroll = changes.get("bankroll", s.bankroll)
        status = changes.get("status", s.status)

        if status != AgentStatus.DIED and bankroll <= self.survival_threshold:
            logger.warning(
                "Agent DIED: bankroll $%.2f <= survival threshold $%.2f",
                bankroll, self.survival_threshold,
            )
            status = AgentStatus.DIED

        changes.update(
            status=status,
            peak_bankroll=max(s.peak_bankroll, bankroll),
            version=s.version + 1,
        )
        self._state = s.model_copy(update=changes)
