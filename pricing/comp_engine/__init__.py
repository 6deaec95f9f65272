"""
Comp Engine v1.0

Deterministic comparable-pricing valuation: cleans raw market records,
selects and adjusts comparables, and classifies a subject's price per
square foot as Below, Market Fair or Above market.
"""

from .models import (
    RawRecord,
    FeatureVector,
    ListingStatus,
    ValuationStatus,
    Classification,
    CleanRecord,
    Subject,
    HedonicModel,
    AdjustedComparable,
    CompSelectionResult,
    QualityPenalties,
    ConfidenceComponents,
    PriceRange,
    PriceGap,
    TopComparable,
    BandExplanation,
    Reconciliation,
    Explanation,
    ModelStats,
    ValueResult,
)
from .exceptions import PricingError, ModelTrainingError, InsufficientTrainingDataError
from .outcome import Success, InsufficientData, Failure, Outcome
from .stats import (
    median,
    percentile,
    winsorize,
    mad,
    mean,
    standard_deviation,
    iqr,
    coeff_variation,
    robust_band_pct,
    robust_stats,
    RobustStats,
    clamp,
    safe_divide,
)
from .hygiene import sanitize, dedupe, is_valid_record, load_and_clean, SUPPORTED_PROPERTY_TYPES
from .filters import ComparableSelector, find_comps, miles_between, feature_distance
from .hedonic import (
    extract_features,
    prepare_training_data,
    TrainingData,
    train_hedonic,
    predict_price_log,
    predict_price,
)
from .adjustments import (
    adjust_comp_price,
    adjust_comparables,
    adjust_comp_price_heuristic,
    validate_adjustments,
    adjustment_stats,
    AdjustmentValidation,
)
from .scoring import (
    calculate_penalties,
    confidence_score,
    data_quality_metrics,
    assess_valuation_risk,
    confidence_bands,
)
from .inputs import validate_inputs, InputValidation
from .valuation import ValuationOptions, ValuationPipeline, value_subject, ENGINE_VERSION

__all__ = [
    # Models
    "RawRecord",
    "FeatureVector",
    "ListingStatus",
    "ValuationStatus",
    "Classification",
    "CleanRecord",
    "Subject",
    "HedonicModel",
    "AdjustedComparable",
    "CompSelectionResult",
    "QualityPenalties",
    "ConfidenceComponents",
    "PriceRange",
    "PriceGap",
    "TopComparable",
    "BandExplanation",
    "Reconciliation",
    "Explanation",
    "ModelStats",
    "ValueResult",
    # Errors and outcomes
    "PricingError",
    "ModelTrainingError",
    "InsufficientTrainingDataError",
    "Success",
    "InsufficientData",
    "Failure",
    "Outcome",
    # Statistics
    "median",
    "percentile",
    "winsorize",
    "mad",
    "mean",
    "standard_deviation",
    "iqr",
    "coeff_variation",
    "robust_band_pct",
    "robust_stats",
    "RobustStats",
    "clamp",
    "safe_divide",
    # Hygiene
    "sanitize",
    "dedupe",
    "is_valid_record",
    "load_and_clean",
    "SUPPORTED_PROPERTY_TYPES",
    # Selection
    "ComparableSelector",
    "find_comps",
    "miles_between",
    "feature_distance",
    # Hedonic model
    "extract_features",
    "prepare_training_data",
    "TrainingData",
    "train_hedonic",
    "predict_price_log",
    "predict_price",
    # Adjustments
    "adjust_comp_price",
    "adjust_comparables",
    "adjust_comp_price_heuristic",
    "validate_adjustments",
    "adjustment_stats",
    "AdjustmentValidation",
    # Scoring
    "calculate_penalties",
    "confidence_score",
    "data_quality_metrics",
    "assess_valuation_risk",
    "confidence_bands",
    # Pipeline
    "validate_inputs",
    "InputValidation",
    "ValuationOptions",
    "ValuationPipeline",
    "value_subject",
    "ENGINE_VERSION",
]

__version__ = ENGINE_VERSION
