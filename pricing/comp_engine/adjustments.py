"""
Price Adjustment for the pricing engine

Re-prices each comparable into the subject's feature and time context:
- Hedonic adjustment: coefficient-weighted feature deltas with the time
  effect isolated through the month coefficient
- Heuristic adjustment: additive dollar amounts when no model is trained
- Diagnostics: validation warnings and adjustment statistics
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from utils.formatting import format_currency, format_percent, format_ppsf

from .filters import miles_between
from .hedonic import MONTH_FEATURE, extract_features
from .models import AdjustedComparable, CleanRecord, FeatureVector, HedonicModel, Subject
from . import stats


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

# Heuristic dollar adjustments
SQFT_ADJ_PER_SQFT = 15.0
SQFT_MIN_DIFF = 50
BED_ADJ = 8000.0
BATH_ADJ = 12000.0
BATH_MIN_DIFF = 0.5
GARAGE_ADJ = 5000.0
NEW_CONSTRUCTION_ADJ_PER_SQFT = 10.0
MONTHLY_APPRECIATION = 0.003
TIME_MIN_MONTHS = 1

# Validation limits
DEFAULT_MAX_ADJUSTMENT_PCT = 25.0
MAX_TIME_ADJUSTMENT_PCT = 10.0
MIN_ADJUSTED_PPSF = 50.0
MAX_ADJUSTED_PPSF = 500.0


@dataclass
class AdjustmentValidation:
    """Diagnostic outcome of validate_adjustments."""
    valid: bool
    warnings: List[str] = field(default_factory=list)
    large_adjustments: List[AdjustedComparable] = field(default_factory=list)


@dataclass(frozen=True)
class AdjustmentStats:
    """Summary of absolute adjustment sizes, in percent units."""
    avg_total_adj_pct: float
    avg_time_adj_pct: float
    max_adj_pct: float
    min_adj_pct: float
    std_adj_pct: float


# =============================================================================
# Hedonic Adjustment
# =============================================================================


def adjust_comp_price(
    comp: CleanRecord,
    subject: Subject,
    model: HedonicModel,
) -> AdjustedComparable:
    """
    Adjust a comparable's price to the subject using model coefficients.

    The subject's features are evaluated at the comp's month so that the
    month coefficient carries the pure time effect:

        time  = exp(b_month * dm) - 1
        total = exp(delta_other + b_month * dm) - 1
        other = total - time

    Any numeric failure falls back to a zero adjustment.

    Args:
        comp: Comparable to adjust
        subject: Property being valued
        model: Trained hedonic model

    Returns:
        AdjustedComparable with percentages in percent units
    """
    distance = miles_between(subject, comp)

    try:
        comp_features = extract_features(comp, model.subdivisions)
        subject_features = extract_features(
            subject, model.subdivisions, force_month=comp.month_index
        )

        delta_other = _feature_delta(comp_features, subject_features, model, exclude=(MONTH_FEATURE,))

        month_coef = model.coefficient(MONTH_FEATURE)
        month_diff = subject.month_index - comp.month_index

        time_adj_pct = math.exp(month_coef * month_diff) - 1
        total_adj_pct = math.exp(delta_other + month_coef * month_diff) - 1
        other_adj_pct = total_adj_pct - time_adj_pct

        price_adj = comp.price * (1 + total_adj_pct)
        if not math.isfinite(price_adj):
            raise ValueError(f"non-finite adjusted price for {comp.id}")

        return AdjustedComparable(
            id=comp.id,
            original_price=comp.price,
            price_adj=price_adj,
            ppsf_adj=price_adj / comp.sqft,
            total_adjustment_pct=total_adj_pct * 100,
            time_adj_pct=time_adj_pct * 100,
            other_adj_pct=other_adj_pct * 100,
            distance_miles=distance,
            comp_record=comp,
        )
    except Exception as e:
        logger.warning("Hedonic adjustment failed for %s, using zero adjustment: %s", comp.id, e)
        return _unadjusted(comp, distance)


def adjust_comparables(
    comps: Iterable[CleanRecord],
    subject: Subject,
    model: Optional[HedonicModel] = None,
) -> List[AdjustedComparable]:
    """Adjust every comp, with the model when given, else heuristics."""
    if model is None:
        return [adjust_comp_price_heuristic(comp, subject) for comp in comps]
    return [adjust_comp_price(comp, subject, model) for comp in comps]


def _feature_delta(
    comp_features: FeatureVector,
    subject_features: FeatureVector,
    model: HedonicModel,
    exclude: Sequence[str] = (),
) -> float:
    """Sum of coef * (subject - comp) over the model's features."""
    delta = 0.0
    for name in model.features:
        if name in exclude:
            continue
        difference = subject_features.get(name, 0.0) - comp_features.get(name, 0.0)
        delta += model.coefficient(name) * difference
    return delta


def _unadjusted(comp: CleanRecord, distance: float) -> AdjustedComparable:
    return AdjustedComparable(
        id=comp.id,
        original_price=comp.price,
        price_adj=comp.price,
        ppsf_adj=comp.price_ppsf,
        total_adjustment_pct=0.0,
        time_adj_pct=0.0,
        other_adj_pct=0.0,
        distance_miles=distance,
        comp_record=comp,
    )


# =============================================================================
# Heuristic Adjustment
# =============================================================================


def adjust_comp_price_heuristic(comp: CleanRecord, subject: Subject) -> AdjustedComparable:
    """
    Adjust a comparable with fixed dollar amounts (no trained model).

    - Square footage: $15/sqft when the difference exceeds 50 sqft
    - Bedrooms: $8,000 each
    - Bathrooms: $12,000 per bath when the difference is at least 0.5
    - Garage: $5,000 per bay
    - New vs resale: subject sqft x $10, sign by which side is new
    - Time: 0.3% of comp price per month when more than 1 month apart
    """
    adjustment = 0.0

    sqft_diff = subject.sqft - comp.sqft
    if abs(sqft_diff) > SQFT_MIN_DIFF:
        adjustment += sqft_diff * SQFT_ADJ_PER_SQFT

    bed_diff = subject.beds - comp.beds
    if bed_diff != 0:
        adjustment += bed_diff * BED_ADJ

    bath_diff = subject.baths - comp.baths
    if abs(bath_diff) >= BATH_MIN_DIFF:
        adjustment += bath_diff * BATH_ADJ

    garage_diff = subject.garage - comp.garage
    if garage_diff != 0:
        adjustment += garage_diff * GARAGE_ADJ

    if subject.is_new and not comp.is_new:
        adjustment += subject.sqft * NEW_CONSTRUCTION_ADJ_PER_SQFT
    elif comp.is_new and not subject.is_new:
        adjustment -= subject.sqft * NEW_CONSTRUCTION_ADJ_PER_SQFT

    time_adj = 0.0
    month_diff = subject.month_index - comp.month_index
    if abs(month_diff) > TIME_MIN_MONTHS:
        time_adj = comp.price * MONTHLY_APPRECIATION * month_diff
        adjustment += time_adj

    price_adj = comp.price + adjustment
    total_adj_pct = adjustment / comp.price * 100
    time_adj_pct = time_adj / comp.price * 100

    return AdjustedComparable(
        id=comp.id,
        original_price=comp.price,
        price_adj=price_adj,
        ppsf_adj=price_adj / comp.sqft,
        total_adjustment_pct=total_adj_pct,
        time_adj_pct=time_adj_pct,
        other_adj_pct=total_adj_pct - time_adj_pct,
        distance_miles=miles_between(subject, comp),
        comp_record=comp,
    )


# =============================================================================
# Diagnostics
# =============================================================================


def validate_adjustments(
    adjusted: Iterable[AdjustedComparable],
    max_adjustment_pct: float = DEFAULT_MAX_ADJUSTMENT_PCT,
) -> AdjustmentValidation:
    """
    Check adjustment magnitudes for diagnostics.

    Invalid when any |total adjustment| exceeds max_adjustment_pct or an
    adjusted price is not positive. Large time adjustments and extreme
    adjusted PPSF only add warnings. Comps are never dropped here.
    """
    result = AdjustmentValidation(valid=True)

    for comp in adjusted:
        if abs(comp.total_adjustment_pct) > max_adjustment_pct:
            result.warnings.append(
                f"Large adjustment on {comp.id}: {format_percent(comp.total_adjustment_pct)}"
            )
            result.large_adjustments.append(comp)
            result.valid = False

        if abs(comp.time_adj_pct) > MAX_TIME_ADJUSTMENT_PCT:
            result.warnings.append(
                f"Large time adjustment on {comp.id}: {format_percent(comp.time_adj_pct)}"
            )

        if comp.price_adj <= 0:
            result.warnings.append(
                f"Non-positive adjusted price on {comp.id}: {format_currency(comp.price_adj, 'USD')}"
            )
            result.valid = False

        if not MIN_ADJUSTED_PPSF <= comp.ppsf_adj <= MAX_ADJUSTED_PPSF:
            result.warnings.append(
                f"Extreme adjusted PPSF on {comp.id}: {format_ppsf(comp.ppsf_adj)}"
            )

    return result


def adjustment_stats(adjusted: Sequence[AdjustedComparable]) -> AdjustmentStats:
    """Average, extremes and spread of absolute adjustment percentages."""
    if not adjusted:
        return AdjustmentStats(0.0, 0.0, 0.0, 0.0, 0.0)

    total = [abs(c.total_adjustment_pct) for c in adjusted]
    time = [abs(c.time_adj_pct) for c in adjusted]

    return AdjustmentStats(
        avg_total_adj_pct=stats.mean(total),
        avg_time_adj_pct=stats.mean(time),
        max_adj_pct=max(total),
        min_adj_pct=min(total),
        std_adj_pct=stats.standard_deviation(total),
    )
