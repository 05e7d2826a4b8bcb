"""
app/services/kelly_sizer.py
Fractional-Kelly position sizing for a detected edge.

Maps the prediction-market edge onto the classical Kelly inputs:

    p             = fair value of the chosen side
    decimal_odds  = 1 / price_side - 1      (net profit per $1 staked)
    raw_kelly     = (b·p − q) / b           (core.math_utils.kelly_fraction)

which equals edge / (1 - price_side) for edge = p - price_side.
"""

import logging

from core.config import KellyConfig
from core.math_utils import decimal_odds as _decimal_odds
from core.math_utils import kelly_fraction
from core.types import BetDecision, Edge

logger = logging.getLogger(__name__)


def _zero_decision(edge: Edge, odds: float, config: KellyConfig, raw_kelly: float = 0.0) -> BetDecision:
    return BetDecision(
        market=edge.market,
        side=edge.side,
        edge=edge.magnitude,
        fair_value=edge.fair_value,
        price=edge.price_for_side,
        decimal_odds=odds,
        raw_kelly_fraction=raw_kelly,
        kelly_multiplier=config.kelly_multiplier,
        bet_amount=0.0,
        confidence=edge.confidence,
        rationale=edge.estimate.rationale,
        data_sources=edge.estimate.data_sources,
    )


def size_bet(edge: Edge, bankroll: float, config: KellyConfig | None = None) -> BetDecision:
    """
    Convert an edge into a bet amount.

    Returns a zero-amount decision when the odds are degenerate, the bankroll
    is not positive, or Kelly says not to bet. Otherwise the amount is raised
    to the minimum bet and then hard-capped at max_bet_pct of bankroll (and
    never more than the bankroll itself); the cap wins over the minimum.
    """
    config = config or KellyConfig()
    price_side = edge.price_for_side

    if price_side <= 0.0 or price_side >= 1.0:
        logger.info("Sizer skipped %s: degenerate price %.4f", edge.market.id, price_side)
        return _zero_decision(edge, 0.0, config)

    odds = _decimal_odds(price_side)
    if odds <= 0.0 or bankroll <= 0.0:
        logger.info(
            "Sizer skipped %s: odds=%.4f bankroll=%.2f", edge.market.id, odds, bankroll,
        )
        return _zero_decision(edge, odds, config)

    if edge.magnitude <= 0.0:
        return _zero_decision(edge, odds, config)

    raw_kelly = kelly_fraction(edge.fair_value, odds)
    if raw_kelly <= 0.0:
        return _zero_decision(edge, odds, config, raw_kelly)

    adjusted = raw_kelly * config.kelly_multiplier
    commission_adj = adjusted * (1.0 - config.commission_rate)

    amount = commission_adj * bankroll
    if amount > 0.0:
        amount = max(amount, config.min_bet)
    amount = min(amount, config.max_bet_pct * bankroll, bankroll)

    logger.info(
        "Sized %s: side=%s edge=%.3f odds=%.3f kelly=%.4f x%.2f -> $%.2f (cap $%.2f)",
        edge.market.id, edge.side.value, edge.magnitude, odds, raw_kelly,
        config.kelly_multiplier, amount, config.max_bet_pct * bankroll,
    )

    return BetDecision(
        market=edge.market,
        side=edge.side,
        edge=edge.magnitude,
        fair_value=edge.fair_value,
        price=price_side,
        decimal_odds=odds,
        raw_kelly_fraction=raw_kelly,
        kelly_multiplier=config.kelly_multiplier,
        bet_amount=amount,
        confidence=edge.confidence,
        rationale=edge.estimate.rationale,
        data_sources=edge.estimate.data_sources,
    )


def payout(decision: BetDecision, commission_rate: float = 0.0) -> float:
    """Profit credited when `decision` wins: amount × decimal_odds × (1 − commission)."""
    return decision.bet_amount * decision.decimal_odds * (1.0 - commission_rate)
