"""
Comparable Pricing Engine - Core Business Logic

Pipeline:
1. Data hygiene (raw records -> CleanRecord)
2. Comparable selection (progressive relaxation)
3. Hedonic model (ridge regression, optional)
4. Price adjustment (model or heuristics)
5. Robust statistics, classification and confidence
6. Reconciliation and suggested price range
"""

from .comp_engine import (
    ListingStatus,
    ValuationStatus,
    Classification,
    CleanRecord,
    Subject,
    HedonicModel,
    AdjustedComparable,
    ValueResult,
    PricingError,
    ModelTrainingError,
    InsufficientTrainingDataError,
    ValuationOptions,
    ValuationPipeline,
    value_subject,
    validate_inputs,
    SUPPORTED_PROPERTY_TYPES,
    ENGINE_VERSION,
)

__all__ = [
    "ListingStatus",
    "ValuationStatus",
    "Classification",
    "CleanRecord",
    "Subject",
    "HedonicModel",
    "AdjustedComparable",
    "ValueResult",
    "PricingError",
    "ModelTrainingError",
    "InsufficientTrainingDataError",
    "ValuationOptions",
    "ValuationPipeline",
    "value_subject",
    "validate_inputs",
    "SUPPORTED_PROPERTY_TYPES",
    "ENGINE_VERSION",
]

__version__ = ENGINE_VERSION
