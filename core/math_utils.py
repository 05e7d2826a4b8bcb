"""
core/math_utils.py
Strict numeric kernel: odds, Kelly, Brier, Sharpe, drawdown.

These functions validate their arguments and raise ValueError on contract
violations. The services clamp inputs before calling in, so a ValueError
escaping from here is a bug in the caller.
"""

import math
from collections.abc import Sequence

import numpy as np

from core.constants import SHARPE_PERIODS_PER_YEAR


def _check_probability(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0) or math.isnan(value):
        raise ValueError(f"{name} must be in [0, 1], got {value}")


# ---------------------------------------------------------------------------
# Odds & sizing
# ---------------------------------------------------------------------------

def decimal_odds(price: float) -> float:
    """
    Net profit per $1 staked on a contract bought at `price` that pays $1.

    A 0.40 contract returns 1.5 (stake $1, collect $2.50 on a win).
    """
    if not (0.0 < price <= 1.0):
        raise ValueError(f"price must be in (0, 1], got {price}")
    return 1.0 / price - 1.0


def kelly_fraction(p_win: float, odds: float) -> float:
    """
    Full-Kelly fraction of bankroll for a binary bet.

    f* = (b·p − q) / b, floored at 0 (never bet a negative edge).
    """
    _check_probability("p_win", p_win)
    if odds <= 0:
        raise ValueError(f"odds must be positive, got {odds}")
    q = 1.0 - p_win
    return max(0.0, (odds * p_win - q) / odds)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def brier_score(predictions: Sequence[float], outcomes: Sequence[bool]) -> float | None:
    """Mean squared error of probabilistic predictions; None when there is nothing to score."""
    if len(predictions) != len(outcomes):
        raise ValueError(
            f"predictions and outcomes differ in length: {len(predictions)} != {len(outcomes)}"
        )
    if not predictions:
        return None
    total = 0.0
    for p, o in zip(predictions, outcomes):
        _check_probability("prediction", p)
        total += (p - (1.0 if o else 0.0)) ** 2
    return total / len(predictions)


# ---------------------------------------------------------------------------
# Performance statistics
# ---------------------------------------------------------------------------

def sharpe_ratio(
    returns: Sequence[float],
    periods_per_year: int = SHARPE_PERIODS_PER_YEAR,
) -> float:
    """
    Annualised Sharpe ratio of a per-period return series (risk-free = 0).

    Uses the sample standard deviation. Returns 0.0 for fewer than two
    observations or a flat series.
    """
    if periods_per_year <= 0:
        raise ValueError(f"periods_per_year must be positive, got {periods_per_year}")
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    std = float(np.std(arr, ddof=1))
    if std < 1e-10:
        return 0.0
    return float(np.mean(arr) / std * np.sqrt(periods_per_year))


def max_drawdown(balances: Sequence[float]) -> tuple[float, float]:
    """
    Largest peak-to-trough decline of a balance series.

    Returns (amount, fraction_of_peak). Both are 0.0 for an empty or
    monotonically rising series.
    """
    if len(balances) == 0:
        return 0.0, 0.0
    equity = np.asarray(balances, dtype=float)
    running_max = np.maximum.accumulate(equity)
    drops = running_max - equity
    idx = int(np.argmax(drops))
    amount = float(drops[idx])
    peak = float(running_max[idx])
    pct = amount / peak if peak > 0 else 0.0
    return amount, pct
