"""
Quality scoring for comparable valuations.

Confidence methodology (0-100):
- Sample size (up to 40): 10 * ln(1 + n)
- Match quality (up to 30): 1 - average feature distance
- Consistency (up to 30): coefficient of variation of adjusted PPSF
- Minus penalties for large adjustments, time drift and sqft mismatch
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence

from .filters import feature_distance, haversine_miles
from .models import AdjustedComparable, ConfidenceComponents, PriceRange, QualityPenalties, Subject
from . import stats


# =============================================================================
# Configuration Constants
# =============================================================================

# Score ceilings
SAMPLE_SIZE_MAX = 40.0
MATCH_QUALITY_MAX = 30.0
CONSISTENCY_MAX = 30.0
CV_CAP = 0.2

# Penalty thresholds
LARGE_ADJUSTMENT_PCT = 12.0  # any comp above this
TIME_DRIFT_PCT = 3.0  # average |time adjustment| above this
SQFT_MISMATCH_RATIO = 0.10

PENALTY_LARGE_ADJUSTMENTS = 5.0
PENALTY_TIME_DRIFT = 5.0
PENALTY_SQFT_MISMATCH = 10.0

# Risk thresholds
RISK_LOW_CONFIDENCE = 50
RISK_MIN_COMPS = 3
RISK_LARGE_ADJUSTMENT_PCT = 15.0
RISK_HIGH_CV = 0.15
RISK_SUBJECT_DEVIATION = 0.20
RISK_STALE_DAYS = 180

RISK_LOW = "low"
RISK_MODERATE = "moderate"
RISK_HIGH = "high"
RISK_VERY_HIGH = "very_high"


@dataclass
class DataQualityMetrics:
    avg_distance: float = 0.0
    avg_days_on_market: float = 0.0
    status_distribution: Dict[str, int] = field(default_factory=dict)
    price_spread: float = 0.0
    geographic_spread: float = 0.0


@dataclass
class RiskAssessment:
    """Valuation risk level with the factors behind it."""
    risk_level: str
    risk_factors: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ConfidenceBands:
    narrow: PriceRange
    wide: PriceRange
    band_width: float


def calculate_penalties(
    adjusted: Sequence[AdjustedComparable],
    subject: Subject,
    median_ppsf: float,
) -> QualityPenalties:
    """
    Quality penalties for a set of adjusted comps.

    +5 if any |total adjustment| > 12%, +5 if the average |time adjustment|
    exceeds 3%, +10 if the sqft implied by the subject price at the median
    PPSF is more than 10% off the subject's sqft.
    """
    large_adjustments = 0.0
    if any(abs(c.total_adjustment_pct) > LARGE_ADJUSTMENT_PCT for c in adjusted):
        large_adjustments = PENALTY_LARGE_ADJUSTMENTS

    time_drift = 0.0
    if adjusted:
        avg_time = sum(abs(c.time_adj_pct) for c in adjusted) / len(adjusted)
        if avg_time > TIME_DRIFT_PCT:
            time_drift = PENALTY_TIME_DRIFT

    sqft_mismatch = 0.0
    if median_ppsf > 0:
        implied_sqft = subject.price / median_ppsf
        if abs(implied_sqft - subject.sqft) / subject.sqft > SQFT_MISMATCH_RATIO:
            sqft_mismatch = PENALTY_SQFT_MISMATCH

    return QualityPenalties(
        large_adjustments=large_adjustments,
        time_drift=time_drift,
        sqft_mismatch=sqft_mismatch,
    )


def confidence_score(
    ppsf_values: Sequence[float],
    adjusted: Sequence[AdjustedComparable],
    subject: Subject,
    penalties: QualityPenalties,
) -> ConfidenceComponents:
    """
    Combine sample size, match quality and consistency into 0-100.

    Args:
        ppsf_values: Adjusted PPSF values used for the median
        adjusted: Adjusted comps (for feature distance)
        subject: Property being valued
        penalties: Output of calculate_penalties

    Returns:
        ConfidenceComponents with final_confidence clamped to [0, 100]
    """
    n = len(ppsf_values)
    sample_size_score = min(SAMPLE_SIZE_MAX, 10 * math.log(1 + n))

    avg_distance = 0.0
    if adjusted:
        avg_distance = stats.mean([feature_distance(subject, c.comp_record) for c in adjusted])
    match_quality_score = MATCH_QUALITY_MAX * (1 - avg_distance)

    cv = min(CV_CAP, stats.coeff_variation(ppsf_values))
    consistency_score = CONSISTENCY_MAX * (1 - cv / CV_CAP)

    total_penalties = penalties.total
    final = stats.clamp(
        sample_size_score + match_quality_score + consistency_score - total_penalties,
        0.0,
        100.0,
    )

    return ConfidenceComponents(
        sample_size_score=sample_size_score,
        match_quality_score=match_quality_score,
        consistency_score=consistency_score,
        penalties=total_penalties,
        final_confidence=final,
    )


def data_quality_metrics(
    adjusted: Sequence[AdjustedComparable],
    subject: Subject,
) -> DataQualityMetrics:
    """Distance, age, status mix and spread of the comp set."""
    if not adjusted:
        return DataQualityMetrics()

    status_distribution: Dict[str, int] = {}
    for comp in adjusted:
        status = comp.comp_record.status.value
        status_distribution[status] = status_distribution.get(status, 0) + 1

    # Max pairwise distance among comps that have coordinates
    located = [c.comp_record for c in adjusted if c.comp_record.lat is not None and c.comp_record.lng is not None]
    geographic_spread = 0.0
    for i, first in enumerate(located):
        for second in located[i + 1:]:
            geographic_spread = max(
                geographic_spread,
                haversine_miles(first.lat, first.lng, second.lat, second.lng),
            )

    return DataQualityMetrics(
        avg_distance=stats.mean([c.distance_miles for c in adjusted]),
        avg_days_on_market=stats.mean([c.comp_record.days_on_market for c in adjusted]),
        status_distribution=status_distribution,
        price_spread=stats.coeff_variation([c.price_adj for c in adjusted]),
        geographic_spread=geographic_spread,
    )


def assess_valuation_risk(
    adjusted: Sequence[AdjustedComparable],
    subject: Subject,
    confidence: float,
    median_ppsf: float,
) -> RiskAssessment:
    """
    Rate how far the valuation can be trusted.

    low: no risk factors and confidence >= 80
    moderate: up to 2 factors and confidence >= 60
    high: up to 4 factors and confidence >= 30
    very_high: anything worse
    """
    factors: List[str] = []
    recommendations: List[str] = []

    if confidence < RISK_LOW_CONFIDENCE:
        factors.append("Low confidence score")
        recommendations.append("Seek additional comparable properties")

    if len(adjusted) < RISK_MIN_COMPS:
        factors.append("Insufficient comparable sales")
        recommendations.append("Expand search criteria or timeline")

    if any(abs(c.total_adjustment_pct) > RISK_LARGE_ADJUSTMENT_PCT for c in adjusted):
        factors.append("Large price adjustments required")
        recommendations.append("Verify property feature differences")

    if stats.coeff_variation([c.ppsf_adj for c in adjusted]) > RISK_HIGH_CV:
        factors.append("High price variability in comparables")
        recommendations.append("Review comparable selection criteria")

    if median_ppsf > 0:
        deviation = abs(subject.price_ppsf - median_ppsf) / median_ppsf
        if deviation > RISK_SUBJECT_DEVIATION:
            factors.append("Subject price significantly differs from market")
            recommendations.append("Verify subject property features and pricing")

    if adjusted and stats.mean([c.comp_record.days_on_market for c in adjusted]) > RISK_STALE_DAYS:
        factors.append("Comparables are relatively old")
        recommendations.append("Seek more recent comparable sales")

    return RiskAssessment(
        risk_level=_risk_level(len(factors), confidence),
        risk_factors=factors,
        recommendations=recommendations,
    )


def _risk_level(factor_count: int, confidence: float) -> str:
    if factor_count == 0 and confidence >= 80:
        return RISK_LOW
    elif factor_count <= 2 and confidence >= 60:
        return RISK_MODERATE
    elif factor_count <= 4 and confidence >= 30:
        return RISK_HIGH
    else:
        return RISK_VERY_HIGH


def confidence_bands(median_ppsf: float, confidence: float, sample_size: int) -> ConfidenceBands:
    """
    PPSF bands around the median that widen with lower confidence and
    fewer comps. The wide band is 1.5x the narrow one.
    """
    base_width = max(0.02, (100 - confidence) / 1000)
    sample_adjustment = max(0.01, 0.15 / math.sqrt(max(sample_size, 1)))
    band_width = min(0.25, base_width + sample_adjustment)

    return ConfidenceBands(
        narrow=PriceRange(median_ppsf * (1 - band_width), median_ppsf * (1 + band_width)),
        wide=PriceRange(median_ppsf * (1 - band_width * 1.5), median_ppsf * (1 + band_width * 1.5)),
        band_width=band_width,
    )
