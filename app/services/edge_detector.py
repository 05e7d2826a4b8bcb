"""
app/services/edge_detector.py
Decides whether a market is mispriced relative to a fair-value estimate,
and on which side.

A YES contract costs `price` and pays $1.00 if YES.
A NO contract costs `(1 - price)` and pays $1.00 if NO.
"""

import logging
from collections.abc import Iterable
from typing import Final

from core.config import EdgeConfig
from core.types import Edge, Estimate, Market, Side

logger = logging.getLogger(__name__)

# Decimal places kept when comparing an edge against its threshold.
_PRECISION: Final = 12


def effective_threshold(market: Market, estimate: Estimate, config: EdgeConfig) -> float:
    """
    Minimum |edge| this (market, estimate) pair must clear.

    The category threshold is multiplied for low-confidence estimates, and the
    noise floor always applies.
    """
    threshold = config.threshold_for(market.category)
    if estimate.confidence < config.low_confidence_cutoff:
        threshold *= config.low_confidence_multiplier
    return round(max(config.noise_floor, threshold), _PRECISION)


def detect_edge(
    market: Market,
    estimate: Estimate,
    config: EdgeConfig | None = None,
) -> Edge | None:
    """
    Compare an estimate to the market price.

    Parameters
    ----------
    market : Market
        Current market snapshot. Its price is already clamped to [0, 1].
    estimate : Estimate
        Fair-value estimate. Probability and confidence are already clamped.
    config : EdgeConfig | None
        Thresholds; defaults apply when omitted.

    Returns
    -------
    Edge | None
        The detected edge, or None when |estimate - price| is below the
        effective threshold.
    """
    config = config or EdgeConfig()
    # 0.48 - 0.40 is 0.07999999999999996 in binary floating point.
    raw = round(estimate.probability - market.price, _PRECISION)
    threshold = effective_threshold(market, estimate, config)

    if abs(raw) < threshold:
        logger.debug(
            "No edge on %s: |%.3f| < %.3f (category=%s confidence=%.2f)",
            market.id, raw, threshold, market.category.value, estimate.confidence,
        )
        return None

    side = Side.YES if raw > 0 else Side.NO
    logger.info(
        "Edge on %s: side=%s edge=%.3f threshold=%.3f price=%.3f estimate=%.3f",
        market.id, side.value, abs(raw), threshold, market.price, estimate.probability,
    )
    return Edge(
        market=market,
        estimate=estimate,
        side=side,
        signed_edge=raw,
        magnitude=abs(raw),
        threshold=threshold,
    )


def find_edges(
    pairs: Iterable[tuple[Market, Estimate]],
    config: EdgeConfig | None = None,
) -> list[Edge]:
    """Detect edges across a batch, largest magnitude first."""
    config = config or EdgeConfig()
    edges = [
        edge
        for market, estimate in pairs
        if (edge := detect_edge(market, estimate, config)) is not None
    ]
    edges.sort(key=lambda e: e.magnitude, reverse=True)
    return edges
