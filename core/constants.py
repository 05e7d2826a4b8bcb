"""
core/constants.py
Default strategy parameters and fixed system constants.
Environment overrides go through core/config.py; these are the baselines.
"""

from typing import Final

# ---------------------------------------------------------------------------
# Edge Detection
# ---------------------------------------------------------------------------
MISPRICING_THRESHOLD: Final[float] = 0.08       # 8pp edge required by default
NOISE_FLOOR: Final[float] = 0.03                # Never trade below 3pp
LOW_CONFIDENCE_CUTOFF: Final[float] = 0.5       # Below this the threshold is raised
LOW_CONFIDENCE_MULTIPLIER: Final[float] = 2.0   # ...by this factor

# Per-category overrides; categories not listed use MISPRICING_THRESHOLD
CATEGORY_THRESHOLDS: Final[dict[str, float]] = {
    "weather": 0.06,
    "sports": 0.08,
    "economics": 0.10,
    "politics": 0.12,
    "culture": 0.10,
}

# ---------------------------------------------------------------------------
# Kelly Sizing
# ---------------------------------------------------------------------------
KELLY_MULTIPLIER: Final[float] = 0.25           # Quarter Kelly
MAX_BET_PCT: Final[float] = 0.06                # 6% of bankroll per market
MIN_BET_SIZE: Final[float] = 1.00               # $1 minimum order
COMMISSION_RATE: Final[float] = 0.0             # Fraction of winnings lost to fees

# ---------------------------------------------------------------------------
# Risk Limits
# ---------------------------------------------------------------------------
MAX_EXPOSURE_PCT: Final[float] = 0.60           # 60% of bankroll deployed at most
CATEGORY_EXPOSURE_PCT: Final[float] = 0.30      # 30% per category
MIN_LIQUIDITY: Final[float] = 100.0             # Skip markets thinner than $100
MAX_BETS_PER_CYCLE: Final[int] = 5
MAX_OPEN_POSITIONS: Final[int] = 20

# Drawdown tiers: (name, minimum bankroll/peak ratio, Kelly multiplier).
# Ordered from loosest to tightest; the first tier whose floor is met applies.
DRAWDOWN_TIERS: Final[tuple[tuple[str, float, float], ...]] = (
    ("aggressive", 2.00, 0.35),
    ("normal", 1.00, 0.25),
    ("conservative", 0.50, 0.15),
    ("survival", 0.25, 0.10),
    ("ultra_conservative", 0.00, 0.05),
)

# ---------------------------------------------------------------------------
# Survival
# ---------------------------------------------------------------------------
INITIAL_BANKROLL: Final[float] = 100.0
SURVIVAL_THRESHOLD: Final[float] = 1.0          # At or below this the agent dies

# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------
CALIBRATION_BINS: Final[int] = 10
CALIBRATION_TOLERANCE: Final[float] = 0.05      # Mean |gap| under 5pp = calibrated
CALIBRATION_MIN_POINTS: Final[int] = 20
CALIBRATION_MIN_BIN_COUNT: Final[int] = 3
CALIBRATION_MIN_POPULATED_BINS: Final[int] = 3
CALIBRATION_EXTREME_BAND: Final[float] = 0.3    # Bins below 0.3 / above 0.7
TREND_DELTA: Final[float] = 0.02                # Brier change that counts as a trend

# ---------------------------------------------------------------------------
# Backtesting
# ---------------------------------------------------------------------------
SHARPE_PERIODS_PER_YEAR: Final[int] = 250 * 24  # Hourly cycles, trading days

# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------
SYSTEM_VERSION: Final[str] = "v2.1-strategy-core"
