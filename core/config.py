"""
core/config.py
Environment-based configuration using pydantic-settings, plus the immutable
strategy configuration objects the services take as explicit arguments.

Settings load from the environment / .env file; every field has a default so
the engine runs with no environment at all. Components never read Settings
themselves; callers build a StrategyConfig via Settings.strategy_config().
"""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from core import constants as C
from core.types import MarketCategory


def _default_category_thresholds() -> dict[MarketCategory, float]:
    return {MarketCategory(k): v for k, v in C.CATEGORY_THRESHOLDS.items()}


def _parse_category_keys(value):
    if isinstance(value, dict):
        return {MarketCategory.parse(k): v for k, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Strategy configuration (immutable, passed explicitly)
# ---------------------------------------------------------------------------

class EdgeConfig(BaseModel):
    """
    Thresholds for the edge detector.

    Parameters
    ----------
    mispricing_threshold : float
        Minimum |estimate - price| for categories without an override.
    category_thresholds : dict[MarketCategory, float]
        Per-category overrides.
    noise_floor : float
        Absolute minimum edge regardless of category.
    low_confidence_cutoff : float
        Estimates with confidence below this face a raised threshold.
    low_confidence_multiplier : float
        Factor applied to the threshold for low-confidence estimates.
    """
    model_config = ConfigDict(frozen=True)

    mispricing_threshold: float = Field(default=C.MISPRICING_THRESHOLD, ge=0.0, le=1.0)
    category_thresholds: dict[MarketCategory, float] = Field(
        default_factory=_default_category_thresholds
    )
    noise_floor: float = Field(default=C.NOISE_FLOOR, ge=0.0, le=1.0)
    low_confidence_cutoff: float = Field(default=C.LOW_CONFIDENCE_CUTOFF, ge=0.0, le=1.0)
    low_confidence_multiplier: float = Field(default=C.LOW_CONFIDENCE_MULTIPLIER, ge=1.0)

    @field_validator("category_thresholds", mode="before")
    @classmethod
    def _keys_to_categories(cls, v):
        return _parse_category_keys(v)

    @field_validator("category_thresholds")
    @classmethod
    def _thresholds_in_range(cls, v: dict[MarketCategory, float]) -> dict[MarketCategory, float]:
        for category, threshold in v.items():
            if not 0.0 <= threshold <= 1.0:
                raise ValueError(f"threshold for {category.value} must be in [0, 1], got {threshold}")
        return v

    def threshold_for(self, category: MarketCategory) -> float:
        """Total lookup: every category resolves, falling back to the default."""
        return self.category_thresholds.get(category, self.mispricing_threshold)


class KellyConfig(BaseModel):
    """Fractional-Kelly sizing parameters."""
    model_config = ConfigDict(frozen=True)

    kelly_multiplier: float = Field(default=C.KELLY_MULTIPLIER, ge=0.0)
    max_bet_pct: float = Field(default=C.MAX_BET_PCT, gt=0.0, le=1.0)
    min_bet: float = Field(default=C.MIN_BET_SIZE, ge=0.0)
    commission_rate: float = Field(default=C.COMMISSION_RATE, ge=0.0, lt=1.0)


class DrawdownTier(BaseModel):
    """Kelly multiplier applied while bankroll/peak is at or above `min_ratio`."""
    model_config = ConfigDict(frozen=True)

    name: str
    min_ratio: float = Field(ge=0.0)
    multiplier: float = Field(ge=0.0)


def _default_tiers() -> tuple[DrawdownTier, ...]:
    return tuple(
        DrawdownTier(name=name, min_ratio=floor, multiplier=mult)
        for name, floor, mult in C.DRAWDOWN_TIERS
    )


class RiskConfig(BaseModel):
    """
    Portfolio limits enforced by the risk manager.

    Percentages are fractions of current bankroll.
    """
    model_config = ConfigDict(frozen=True)

    max_bet_pct: float = Field(default=C.MAX_BET_PCT, gt=0.0, le=1.0)
    max_exposure_pct: float = Field(default=C.MAX_EXPOSURE_PCT, gt=0.0, le=1.0)
    category_exposure_pct: float = Field(default=C.CATEGORY_EXPOSURE_PCT, gt=0.0, le=1.0)
    category_exposure_overrides: dict[MarketCategory, float] = Field(default_factory=dict)
    min_liquidity: float = Field(default=C.MIN_LIQUIDITY, ge=0.0)
    min_bet: float = Field(default=C.MIN_BET_SIZE, ge=0.0)
    max_bets_per_cycle: int = Field(default=C.MAX_BETS_PER_CYCLE, ge=0)
    max_open_positions: int = Field(default=C.MAX_OPEN_POSITIONS, ge=0)
    drawdown_tiers: tuple[DrawdownTier, ...] = Field(default_factory=_default_tiers)

    @field_validator("category_exposure_overrides", mode="before")
    @classmethod
    def _keys_to_categories(cls, v):
        return _parse_category_keys(v)

    @field_validator("drawdown_tiers")
    @classmethod
    def _tiers_ordered(cls, v: tuple[DrawdownTier, ...]) -> tuple[DrawdownTier, ...]:
        if not v:
            raise ValueError("at least one drawdown tier is required")
        floors = [t.min_ratio for t in v]
        if any(a <= b for a, b in zip(floors, floors[1:])):
            raise ValueError("drawdown tiers must be ordered by strictly decreasing min_ratio")
        if floors[-1] != 0.0:
            raise ValueError("the last drawdown tier must have min_ratio 0.0")
        return v

    def category_limit(self, category: MarketCategory) -> float:
        return self.category_exposure_overrides.get(category, self.category_exposure_pct)


class CalibrationConfig(BaseModel):
    """Binning and diagnosis parameters for the calibration engine."""
    model_config = ConfigDict(frozen=True)

    num_bins: int = Field(default=C.CALIBRATION_BINS, ge=1)
    tolerance: float = Field(default=C.CALIBRATION_TOLERANCE, gt=0.0)
    min_points: int = Field(default=C.CALIBRATION_MIN_POINTS, ge=0)
    min_bin_count: int = Field(default=C.CALIBRATION_MIN_BIN_COUNT, ge=1)
    min_populated_bins: int = Field(default=C.CALIBRATION_MIN_POPULATED_BINS, ge=0)
    extreme_band: float = Field(default=C.CALIBRATION_EXTREME_BAND, gt=0.0, le=0.5)
    adjustment_scale: float = Field(default=2.0, ge=0.0)
    min_adjustment: float = Field(default=0.5, gt=0.0, le=1.0)
    max_adjustment: float = Field(default=2.0, ge=1.0)


class StrategyConfig(BaseModel):
    """Everything one cycle, backtest or calibration run needs."""
    model_config = ConfigDict(frozen=True)

    edge: EdgeConfig = Field(default_factory=EdgeConfig)
    kelly: KellyConfig = Field(default_factory=KellyConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)


# ---------------------------------------------------------------------------
# Settings (environment)
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # --- Edge detection ---
    MISPRICING_THRESHOLD: float = C.MISPRICING_THRESHOLD
    CATEGORY_THRESHOLDS: dict[str, float] = Field(default_factory=lambda: dict(C.CATEGORY_THRESHOLDS))
    NOISE_FLOOR: float = C.NOISE_FLOOR
    LOW_CONFIDENCE_CUTOFF: float = C.LOW_CONFIDENCE_CUTOFF
    LOW_CONFIDENCE_MULTIPLIER: float = C.LOW_CONFIDENCE_MULTIPLIER

    # --- Sizing ---
    KELLY_MULTIPLIER: float = C.KELLY_MULTIPLIER
    MAX_BET_PCT: float = C.MAX_BET_PCT
    MIN_BET_SIZE: float = C.MIN_BET_SIZE
    COMMISSION_RATE: float = C.COMMISSION_RATE

    # --- Risk ---
    MAX_EXPOSURE_PCT: float = C.MAX_EXPOSURE_PCT
    CATEGORY_EXPOSURE_PCT: float = C.CATEGORY_EXPOSURE_PCT
    CATEGORY_EXPOSURE_OVERRIDES: dict[str, float] = Field(default_factory=dict)
    MIN_LIQUIDITY: float = C.MIN_LIQUIDITY
    MAX_BETS_PER_CYCLE: int = C.MAX_BETS_PER_CYCLE
    MAX_OPEN_POSITIONS: int = C.MAX_OPEN_POSITIONS

    # --- Calibration ---
    CALIBRATION_BINS: int = C.CALIBRATION_BINS
    CALIBRATION_TOLERANCE: float = C.CALIBRATION_TOLERANCE

    # --- Agent ---
    INITIAL_BANKROLL: float = C.INITIAL_BANKROLL
    SURVIVAL_THRESHOLD: float = C.SURVIVAL_THRESHOLD

    # --- Backtest ---
    SHARPE_PERIODS_PER_YEAR: int = C.SHARPE_PERIODS_PER_YEAR

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./strategy_engine.db"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    def strategy_config(self) -> StrategyConfig:
        """Build the immutable strategy configuration from these settings."""
        return StrategyConfig(
            edge=EdgeConfig(
                mispricing_threshold=self.MISPRICING_THRESHOLD,
                category_thresholds=self.CATEGORY_THRESHOLDS,
                noise_floor=self.NOISE_FLOOR,
                low_confidence_cutoff=self.LOW_CONFIDENCE_CUTOFF,
                low_confidence_multiplier=self.LOW_CONFIDENCE_MULTIPLIER,
            ),
            kelly=KellyConfig(
                kelly_multiplier=self.KELLY_MULTIPLIER,
                max_bet_pct=self.MAX_BET_PCT,
                min_bet=self.MIN_BET_SIZE,
                commission_rate=self.COMMISSION_RATE,
            ),
            risk=RiskConfig(
                max_bet_pct=self.MAX_BET_PCT,
                max_exposure_pct=self.MAX_EXPOSURE_PCT,
                category_exposure_pct=self.CATEGORY_EXPOSURE_PCT,
                category_exposure_overrides=self.CATEGORY_EXPOSURE_OVERRIDES,
                min_liquidity=self.MIN_LIQUIDITY,
                min_bet=self.MIN_BET_SIZE,
                max_bets_per_cycle=self.MAX_BETS_PER_CYCLE,
                max_open_positions=self.MAX_OPEN_POSITIONS,
            ),
            calibration=CalibrationConfig(
                num_bins=self.CALIBRATION_BINS,
                tolerance=self.CALIBRATION_TOLERANCE,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton access to application settings."""
    return Settings()
