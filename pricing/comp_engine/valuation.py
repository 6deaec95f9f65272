"""
Valuation Pipeline for the comparable pricing engine

Implements:
- Data hygiene for subject and market pool
- Comparable selection with progressive relaxation
- Optional hedonic model training with heuristic fallback
- Comp price adjustment and robust market statistics
- Below / Market Fair / Above classification
- Confidence scoring, dual-valuation reconciliation and price range
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from .adjustments import DEFAULT_MAX_ADJUSTMENT_PCT, adjust_comparables, validate_adjustments
from .exceptions import ModelTrainingError
from .filters import DEFAULT_MIN_COMPS, ComparableSelector
from .hedonic import MIN_TRAINING_RECORDS, predict_price, train_hedonic
from .hygiene import load_and_clean, parse_date, sanitize
from .models import (
    AdjustedComparable,
    BandExplanation,
    Classification,
    CleanRecord,
    CompSelectionResult,
    Explanation,
    HedonicModel,
    ListingStatus,
    ModelStats,
    PriceGap,
    PriceRange,
    Reconciliation,
    Subject,
    TopComparable,
    ValuationStatus,
    ValueResult,
)
from .outcome import Failure, InsufficientData, Outcome, Success
from .scoring import assess_valuation_risk, calculate_penalties, confidence_score
from . import stats


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

ENGINE_VERSION = "1.0.0"

# Winsorization percentiles for adjusted PPSF
WINSOR_LOWER_PCT = 10
WINSOR_UPPER_PCT = 90

# Minimum classification threshold (fraction of median)
MIN_CLASSIFICATION_THRESHOLD = 0.05

# Reconciliation
RECONCILIATION_FLAG_PCT = 5.0
RECONCILIATION_PENALTY = 20.0

# Price range
PREDICTION_INTERVAL_Z = 1.645  # 90% two-sided
FALLBACK_RANGE_PCT = 0.15

TOP_COMPARABLES = 3


@dataclass
class ValuationOptions:
    """
    Per-call valuation options.

    reference_date anchors every time-dependent rule; when None the
    subject's list date is used, then today.
    """
    min_comps: int = DEFAULT_MIN_COMPS
    use_hedonic_model: bool = True
    fallback_to_heuristics: bool = True
    max_adjustment_pct: float = DEFAULT_MAX_ADJUSTMENT_PCT
    reference_date: Optional[date] = None

    def __post_init__(self):
        if int(self.min_comps) < 1:
            raise ValueError(f"min_comps must be at least 1, got {self.min_comps}")
        if self.max_adjustment_pct <= 0:
            raise ValueError(f"max_adjustment_pct must be positive, got {self.max_adjustment_pct}")
        self.min_comps = int(self.min_comps)

    # camelCase names accepted from JSON callers
    _ALIASES = {
        "minComps": "min_comps",
        "useHedonicModel": "use_hedonic_model",
        "fallbackToHeuristics": "fallback_to_heuristics",
        "maxAdjustmentPct": "max_adjustment_pct",
        "referenceDate": "reference_date",
    }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ValuationOptions":
        """Build options from a mapping with snake_case or camelCase keys."""
        kwargs = {}
        for key, value in (data or {}).items():
            name = cls._ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                continue
            if name == "reference_date" and value is not None:
                value = parse_date(value)
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class MarketSummary:
    """Robust statistics over winsorized adjusted PPSF."""
    ppsf_values: List[float]
    median: float
    p25: float
    p75: float
    band_pct: float


# =============================================================================
# Pure Valuation Rules
# =============================================================================


def classify_price(
    subject_ppsf: float,
    median_ppsf: float,
    band_pct: float,
    subject_sqft: float,
) -> Tuple[Classification, PriceGap]:
    """
    Classify the subject's PPSF against the comp median.

    The threshold is max(0.05, band_pct) of the median on either side.
    """
    delta_ppsf = subject_ppsf - median_ppsf
    threshold = max(MIN_CLASSIFICATION_THRESHOLD, band_pct)

    if delta_ppsf < -median_ppsf * threshold:
        classification = Classification.BELOW
    elif delta_ppsf > median_ppsf * threshold:
        classification = Classification.ABOVE
    else:
        classification = Classification.MARKET_FAIR

    return classification, PriceGap(delta_ppsf=delta_ppsf, total_delta=delta_ppsf * subject_sqft)


def reconcile(subject: Subject, median_ppsf: float, model: Optional[HedonicModel]) -> Reconciliation:
    """
    Cross-check the median-based price against the model prediction.

    Without a model both estimates are the median-based price.
    """
    p_med = median_ppsf * subject.sqft

    p_hed = p_med
    if model is not None:
        try:
            p_hed = predict_price(subject, model)
        except (OverflowError, ValueError) as e:
            logger.warning("Hedonic prediction failed, reconciling against median: %s", e)

    avg_price = (p_med + p_hed) / 2
    diff_pct = stats.safe_divide(abs(p_med - p_hed), avg_price) * 100

    return Reconciliation(
        p_med=p_med,
        p_hed=p_hed,
        diff_pct=diff_pct,
        flag=diff_pct > RECONCILIATION_FLAG_PCT,
    )


def suggested_price_range(base_price: float, model: Optional[HedonicModel]) -> PriceRange:
    """
    90% log-normal prediction interval from the model RMSE, else +/-15%.

    Bounds are rounded to whole dollars.
    """
    if model is not None and model.rmse_log > 0:
        multiplier = math.exp(PREDICTION_INTERVAL_Z * model.rmse_log)
        return PriceRange(
            low=float(round(base_price / multiplier)),
            high=float(round(base_price * multiplier)),
        )

    return PriceRange(
        low=float(round(base_price * (1 - FALLBACK_RANGE_PCT))),
        high=float(round(base_price * (1 + FALLBACK_RANGE_PCT))),
    )


def summarise_market(adjusted: Sequence[AdjustedComparable]) -> MarketSummary:
    """Winsorize adjusted PPSF at 10/90 and take median, P25, P75, band."""
    winsorized = stats.winsorize([c.ppsf_adj for c in adjusted], WINSOR_LOWER_PCT, WINSOR_UPPER_PCT)
    median_ppsf = stats.median(winsorized)
    return MarketSummary(
        ppsf_values=winsorized,
        median=median_ppsf,
        p25=stats.percentile(winsorized, 25),
        p75=stats.percentile(winsorized, 75),
        band_pct=stats.robust_band_pct(winsorized, median_ppsf),
    )


def resolve_reference_date(subject_raw: Mapping[str, Any], options: ValuationOptions) -> date:
    """Explicit option, else the subject's list date, else today."""
    if options.reference_date is not None:
        return options.reference_date
    return parse_date(subject_raw.get("list_date")) or date.today()


# =============================================================================
# Pipeline
# =============================================================================


class ValuationPipeline:
    """
    Complete valuation pipeline for a subject property.

    Pipeline order:
    1. CLEAN - Sanitize subject, clean market pool
    2. SELECT - Find comps through relaxation tiers
    3. MODEL - Train hedonic model if enough sold records
    4. ADJUST - Re-price comps to the subject
    5. SCORE - Classify, penalise, score confidence
    6. RECONCILE - Cross-check with the model, derive price range

    Each stage returns an Outcome; anything but Success ends the run with
    the matching terminal result. The public entry point never raises.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize pipeline.

        Args:
            logger: Destination for diagnostics (default: module logger)
        """
        self._logger = logger or logging.getLogger(__name__)

    def value_subject(
        self,
        subject_raw: Mapping[str, Any],
        market_raw: Sequence[Mapping[str, Any]],
        options: Union[ValuationOptions, Mapping[str, Any], None] = None,
    ) -> ValueResult:
        """
        Value a subject property against a raw market pool.

        Args:
            subject_raw: Raw subject record
            market_raw: Raw candidate comparable records
            options: ValuationOptions or a mapping of option names

        Returns:
            ValueResult with status success, insufficient_data or error
        """
        try:
            if not isinstance(options, ValuationOptions):
                options = ValuationOptions.from_dict(options)
            return self._run(subject_raw, market_raw, options)
        except Exception as e:
            self._logger.exception("Valuation pipeline error")
            return ValueResult.error(str(e) or type(e).__name__)

    def _run(
        self,
        subject_raw: Mapping[str, Any],
        market_raw: Sequence[Mapping[str, Any]],
        options: ValuationOptions,
    ) -> ValueResult:
        if not isinstance(subject_raw, Mapping):
            return ValueResult.insufficient_data("Subject property failed data validation")

        reference_date = resolve_reference_date(subject_raw, options)
        self._logger.info(
            "Starting valuation for %s (reference date %s)",
            subject_raw.get("id"), reference_date.isoformat(),
        )

        # Step 1: Clean
        cleaned = self.clean(subject_raw, market_raw, reference_date)
        if not isinstance(cleaned, Success):
            return self._terminal(cleaned)
        subject, pool = cleaned.value

        # Step 2: Select
        selected = self.select(subject, pool, options.min_comps, reference_date)
        if not isinstance(selected, Success):
            return self._terminal(selected)
        selection = selected.value

        # Step 3: Model
        modeled = self.train(pool, options)
        if not isinstance(modeled, Success):
            return self._terminal(modeled)
        model = modeled.value

        # Step 4: Adjust
        adjusted = adjust_comparables(selection.comparables, subject, model)
        validation = validate_adjustments(adjusted, options.max_adjustment_pct)
        for warning in validation.warnings:
            self._logger.debug("Adjustment warning: %s", warning)
        self._logger.info(
            "Adjusted %d comparables (%s)",
            len(adjusted), "hedonic" if model is not None else "heuristic",
        )

        # Step 5: Score
        summarised = self.summarise(adjusted)
        if not isinstance(summarised, Success):
            return self._terminal(summarised)
        market = summarised.value

        subject_ppsf = subject.price_ppsf
        classification, price_gap = classify_price(
            subject_ppsf, market.median, market.band_pct, subject.sqft
        )
        penalties = calculate_penalties(adjusted, subject, market.median)
        components = confidence_score(market.ppsf_values, adjusted, subject, penalties)

        # Step 6: Reconcile
        recon = reconcile(subject, market.median, model)
        confidence = components.final_confidence
        if recon.flag:
            confidence = max(confidence - RECONCILIATION_PENALTY, 0.0)
            self._logger.info(
                "Reconciliation flag: %.1f%% difference, confidence reduced to %.0f",
                recon.diff_pct, confidence,
            )

        price_range = suggested_price_range(recon.p_hed, model)
        risk = assess_valuation_risk(adjusted, subject, confidence, market.median)

        result = ValueResult(
            status=ValuationStatus.SUCCESS,
            classification=classification,
            confidence=int(round(confidence)),
            median_ppsf=market.median,
            suggested_price_range=price_range,
            price_gap=price_gap,
            explain=Explanation(
                top3=[
                    TopComparable(
                        id=c.id,
                        raw_ppsf=c.comp_record.price_ppsf,
                        adjusted_ppsf=c.ppsf_adj,
                        distance_miles=c.distance_miles,
                    )
                    for c in adjusted[:TOP_COMPARABLES]
                ],
                band=BandExplanation(
                    median=market.median,
                    band_pct=market.band_pct,
                    fair_range=PriceRange(
                        low=market.median * (1 - market.band_pct),
                        high=market.median * (1 + market.band_pct),
                    ),
                    subject_ppsf=subject_ppsf,
                    p25=market.p25,
                    p75=market.p75,
                ),
                recon=recon,
            ),
            model_stats=ModelStats(
                comp_count=len(adjusted),
                adjusted_comps=adjusted,
                hedonic_model=model,
                penalties=penalties.total,
                criteria_used=selection.criteria_used,
                confidence_components=components,
                adjustment_warnings=list(validation.warnings),
                risk=risk.to_dict(),
            ),
            message=f"Valued against {len(adjusted)} comparables ({selection.criteria_used} criteria)",
        )

        self._logger.info(
            "Valuation complete: %s (%d%% confidence)",
            classification.value, result.confidence,
        )
        return result

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def clean(
        self,
        subject_raw: Mapping[str, Any],
        market_raw: Sequence[Mapping[str, Any]],
        reference_date: date,
    ) -> Outcome[Tuple[Subject, List[CleanRecord]]]:
        subject_clean = sanitize(subject_raw, reference_date)
        if subject_clean is None:
            return InsufficientData("Subject property failed data validation")

        pool = load_and_clean(market_raw, reference_date)
        return Success((Subject.from_record(subject_clean), pool))

    def select(
        self,
        subject: Subject,
        pool: List[CleanRecord],
        min_comps: int,
        reference_date: date,
    ) -> Outcome[CompSelectionResult]:
        selection = ComparableSelector(reference_date).find_comps(subject, pool, min_comps)
        self._logger.info(
            "Found %d comparables using %s criteria",
            selection.comp_count, selection.criteria_used,
        )

        if selection.comp_count < min_comps:
            return InsufficientData(
                f"Only found {selection.comp_count} comparable properties (need {min_comps})"
            )
        return Success(selection)

    def train(self, pool: List[CleanRecord], options: ValuationOptions) -> Outcome[Optional[HedonicModel]]:
        if not options.use_hedonic_model:
            return Success(None)

        sold = [r for r in pool if r.status == ListingStatus.SOLD]
        if len(sold) < MIN_TRAINING_RECORDS:
            self._logger.info("Insufficient sold data for hedonic model: %d records", len(sold))
            return Success(None)

        try:
            return Success(train_hedonic(sold))
        except ModelTrainingError as e:
            if options.fallback_to_heuristics:
                self._logger.warning("Hedonic model training failed, using heuristics: %s", e)
                return Success(None)
            return Failure(f"Failed to train hedonic model: {e}")

    def summarise(self, adjusted: List[AdjustedComparable]) -> Outcome[MarketSummary]:
        market = summarise_market(adjusted)
        if market.median <= 0:
            return InsufficientData("No positive adjusted price per square foot among comparables")
        return Success(market)

    def _terminal(self, outcome: Outcome) -> ValueResult:
        if isinstance(outcome, InsufficientData):
            self._logger.info("Insufficient data: %s", outcome.reason)
            return ValueResult.insufficient_data(outcome.reason)
        self._logger.error("Valuation failed: %s", outcome.reason)
        return ValueResult.error(outcome.reason)


def value_subject(
    subject_raw: Mapping[str, Any],
    market_raw: Sequence[Mapping[str, Any]],
    options: Union[ValuationOptions, Mapping[str, Any], None] = None,
    logger: Optional[logging.Logger] = None,
) -> ValueResult:
    """Value a subject with a one-off ValuationPipeline."""
    return ValuationPipeline(logger).value_subject(subject_raw, market_raw, options)
