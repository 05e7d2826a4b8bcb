"""
app/services/calibration_engine.py
Calibration tracking: Brier scores, binned reliability curves and an
over/under-confidence diagnosis per category.

Threshold adjustments are only recommended here. apply_adjustments() is the
explicit commit step and is never called by the engine itself.
"""

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from core.config import CalibrationConfig, EdgeConfig
from core.constants import TREND_DELTA
from core.math_utils import brier_score
from core.types import CalibrationPoint, MarketCategory

logger = logging.getLogger(__name__)


class Diagnosis(str, Enum):
    WELL_CALIBRATED = "well_calibrated"
    OVER_CONFIDENT = "over_confident"
    UNDER_CONFIDENT = "under_confident"
    INSUFFICIENT_DATA = "insufficient_data"


# ------------------------------------------------------------------
# Result types
# ------------------------------------------------------------------

@dataclass(frozen=True)
class CalibrationBin:
    """Predictions in [lo, hi); the last bin also holds 1.0."""
    lo: float
    hi: float
    count: int
    mean_predicted: float | None
    observed_frequency: float | None

    @property
    def midpoint(self) -> float:
        return (self.lo + self.hi) / 2.0

    @property
    def gap(self) -> float | None:
        if self.count == 0:
            return None
        return abs(self.mean_predicted - self.observed_frequency)


@dataclass(frozen=True)
class ThresholdAdjustment:
    category: MarketCategory
    diagnosis: Diagnosis
    factor: float
    current_threshold: float
    recommended_threshold: float


@dataclass
class CalibrationReport:
    total: int
    overall_brier: float | None
    curve: list[CalibrationBin]
    diagnosis: Diagnosis
    mean_abs_gap: float | None
    category_brier: dict[MarketCategory, float] = field(default_factory=dict)
    category_diagnosis: dict[MarketCategory, Diagnosis] = field(default_factory=dict)
    adjustments: dict[MarketCategory, ThresholdAdjustment] = field(default_factory=dict)
    trend: str = "stable"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _bin_index(p: float, num_bins: int) -> int:
    idx = min(int(p * num_bins), num_bins - 1)
    # Correct float rounding so that lo <= p < hi holds exactly.
    if idx < num_bins - 1 and p >= (idx + 1) / num_bins:
        idx += 1
    elif idx > 0 and p < idx / num_bins:
        idx -= 1
    return idx


def build_curve(points: Sequence[CalibrationPoint], num_bins: int = 10) -> list[CalibrationBin]:
    """Equal-width reliability curve over [0, 1]."""
    buckets: list[list[CalibrationPoint]] = [[] for _ in range(num_bins)]
    for point in points:
        buckets[_bin_index(point.predicted, num_bins)].append(point)

    curve = []
    for i, in_bin in enumerate(buckets):
        if in_bin:
            mean_predicted = sum(p.predicted for p in in_bin) / len(in_bin)
            observed = sum(1.0 if p.outcome else 0.0 for p in in_bin) / len(in_bin)
        else:
            mean_predicted = None
            observed = None
        curve.append(CalibrationBin(
            lo=i / num_bins,
            hi=(i + 1) / num_bins,
            count=len(in_bin),
            mean_predicted=mean_predicted,
            observed_frequency=observed,
        ))
    return curve


def _weighted_gap(bins: Sequence[CalibrationBin]) -> float | None:
    total = sum(b.count for b in bins)
    if total == 0:
        return None
    return sum(b.count * b.gap for b in bins) / total


def diagnose(
    curve: Sequence[CalibrationBin],
    total: int,
    config: CalibrationConfig | None = None,
) -> Diagnosis:
    """
    Label a reliability curve.

    Over-confident means observed frequencies near the extremes sit closer
    to 0.5 than the predictions did; under-confident is the reverse.
    """
    config = config or CalibrationConfig()
    populated = [b for b in curve if b.count >= config.min_bin_count]
    if total < config.min_points or len(populated) < config.min_populated_bins:
        return Diagnosis.INSUFFICIENT_DATA

    gap = _weighted_gap(populated)
    if gap is not None and gap < config.tolerance:
        return Diagnosis.WELL_CALIBRATED

    over = under = 0
    for b in populated:
        if b.gap < config.tolerance:
            continue
        if config.extreme_band <= b.midpoint <= 1.0 - config.extreme_band:
            continue
        if abs(b.observed_frequency - 0.5) < abs(b.mean_predicted - 0.5):
            over += 1
        else:
            under += 1

    if over > under:
        return Diagnosis.OVER_CONFIDENT
    if under > over:
        return Diagnosis.UNDER_CONFIDENT

    # Tie (or no extreme signals): fall back to the weighted spread of every bin.
    spread = sum(
        b.count * (abs(b.mean_predicted - 0.5) - abs(b.observed_frequency - 0.5))
        for b in populated
    )
    if spread > 0:
        return Diagnosis.OVER_CONFIDENT
    if spread < 0:
        return Diagnosis.UNDER_CONFIDENT
    return Diagnosis.WELL_CALIBRATED


def brier_trend(points: Sequence[CalibrationPoint], window: int = 10) -> str:
    """Is the recent window scoring better or worse than the one before it?"""
    if len(points) < window * 2:
        return "stable"

    ordered = list(points)
    if all(p.resolved_at is not None for p in ordered):
        ordered.sort(key=lambda p: p.resolved_at)
    older = ordered[-window * 2:-window]
    recent = ordered[-window:]

    def avg_brier(subset: list[CalibrationPoint]) -> float:
        return brier_score([p.predicted for p in subset], [p.outcome for p in subset])

    diff = avg_brier(recent) - avg_brier(older)
    if diff < -TREND_DELTA:
        return "improving"
    elif diff > TREND_DELTA:
        return "degrading"
    return "stable"


def recommend_adjustment(
    category: MarketCategory,
    diagnosis: Diagnosis,
    gap: float | None,
    edge_config: EdgeConfig,
    config: CalibrationConfig | None = None,
) -> ThresholdAdjustment:
    """Raise the edge threshold for over-confident categories, lower it for under-confident ones."""
    config = config or CalibrationConfig()
    shift = config.adjustment_scale * (gap or 0.0)
    if diagnosis == Diagnosis.OVER_CONFIDENT:
        factor = min(1.0 + shift, config.max_adjustment)
    elif diagnosis == Diagnosis.UNDER_CONFIDENT:
        factor = max(1.0 - shift, config.min_adjustment)
    else:
        factor = 1.0

    current = edge_config.threshold_for(category)
    return ThresholdAdjustment(
        category=category,
        diagnosis=diagnosis,
        factor=factor,
        current_threshold=current,
        recommended_threshold=min(1.0, current * factor),
    )


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------

def calibrate(
    points: Sequence[CalibrationPoint],
    config: CalibrationConfig | None = None,
    edge_config: EdgeConfig | None = None,
) -> CalibrationReport:
    """
    Build the full calibration report for a set of resolved predictions.

    Parameters
    ----------
    points : Sequence[CalibrationPoint]
        (prediction, outcome) pairs, optionally ordered by resolution time.
    config : CalibrationConfig | None
        Binning and diagnosis parameters.
    edge_config : EdgeConfig | None
        Current edge thresholds, used to express recommended adjustments.
    """
    config = config or CalibrationConfig()
    edge_config = edge_config or EdgeConfig()

    curve = build_curve(points, config.num_bins)
    overall = brier_score([p.predicted for p in points], [p.outcome for p in points])
    diagnosis = diagnose(curve, len(points), config)

    by_category: dict[MarketCategory, list[CalibrationPoint]] = defaultdict(list)
    for p in points:
        by_category[p.category].append(p)

    report = CalibrationReport(
        total=len(points),
        overall_brier=overall,
        curve=curve,
        diagnosis=diagnosis,
        mean_abs_gap=_weighted_gap([b for b in curve if b.count > 0]),
        trend=brier_trend(points),
    )

    for category, subset in sorted(by_category.items(), key=lambda kv: kv[0].value):
        cat_curve = build_curve(subset, config.num_bins)
        cat_diagnosis = diagnose(cat_curve, len(subset), config)
        report.category_brier[category] = brier_score(
            [p.predicted for p in subset], [p.outcome for p in subset]
        )
        report.category_diagnosis[category] = cat_diagnosis
        report.adjustments[category] = recommend_adjustment(
            category,
            cat_diagnosis,
            _weighted_gap([b for b in cat_curve if b.count >= config.min_bin_count]),
            edge_config,
            config,
        )

    logger.info(
        "Calibration: %d points, brier=%s, diagnosis=%s, trend=%s, categories=%s",
        report.total,
        f"{overall:.4f}" if overall is not None else "n/a",
        diagnosis.value,
        report.trend,
        {c.value: d.value for c, d in report.category_diagnosis.items()},
    )
    return report


def apply_adjustments(
    edge_config: EdgeConfig,
    adjustments: dict[MarketCategory, ThresholdAdjustment] | Sequence[ThresholdAdjustment],
) -> EdgeConfig:
    """Commit recommended thresholds, returning a new EdgeConfig."""
    items = adjustments.values() if isinstance(adjustments, dict) else adjustments
    thresholds = dict(edge_config.category_thresholds)
    for adj in items:
        if adj.factor == 1.0:
            continue
        logger.info(
            "Threshold for %s: %.3f -> %.3f (%s)",
            adj.category.value, thresholds.get(adj.category, edge_config.mispricing_threshold),
            adj.recommended_threshold, adj.diagnosis.value,
        )
        thresholds[adj.category] = adj.recommended_threshold
    return EdgeConfig(
        mispricing_threshold=edge_config.mispricing_threshold,
        category_thresholds=thresholds,
        noise_floor=edge_config.noise_floor,
        low_confidence_cutoff=edge_config.low_confidence_cutoff,
        low_confidence_multiplier=edge_config.low_confidence_multiplier,
    )
