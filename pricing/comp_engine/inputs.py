"""
Pre-flight input validation.

Cheap checks a caller can run before a valuation to see whether the
subject is usable and roughly how many comparables the market pool holds.
Nothing here is required by the pipeline itself.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from .hedonic import MIN_TRAINING_RECORDS
from .hygiene import to_number
from .models import ListingStatus


# Loose criteria for estimating the comp count
ESTIMATE_BEDS_TOLERANCE = 2
ESTIMATE_SQFT_TOLERANCE_PCT = 0.25

MIN_ESTIMATED_COMPS = 3
TARGET_ESTIMATED_COMPS = 10


@dataclass
class InputValidation:
    is_valid: bool
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    estimated_comps: int = 0


def validate_inputs(
    subject_raw: Optional[Mapping[str, Any]],
    market_raw: Optional[Sequence[Mapping[str, Any]]],
) -> InputValidation:
    """
    Check that a subject and market pool are usable.

    Args:
        subject_raw: Raw subject record
        market_raw: Raw market records

    Returns:
        InputValidation with warnings, recommendations and an estimated
        comp count (beds +/-2, sqft +/-25%)
    """
    result = InputValidation(is_valid=True)

    subject_price = subject_sqft = subject_beds = None
    if not subject_raw:
        result.warnings.append("Subject property is required")
        result.is_valid = False
    else:
        subject_price = to_number(subject_raw.get("price"))
        subject_sqft = to_number(subject_raw.get("sqft"))
        subject_beds = to_number(subject_raw.get("beds"))

        if not subject_price or subject_price <= 0:
            result.warnings.append("Subject property must have valid price")
            result.is_valid = False
        if not subject_sqft or subject_sqft <= 0:
            result.warnings.append("Subject property must have valid square footage")
            result.is_valid = False
        if not subject_beds or subject_beds <= 0:
            result.warnings.append("Subject property must have valid bedroom count")
            result.is_valid = False

    market = list(market_raw or [])
    if not market:
        result.warnings.append("Market data is required and must be non-empty")
        result.is_valid = False

    if result.is_valid:
        subject_id = subject_raw.get("id")
        for home in market:
            sqft = to_number(home.get("sqft"))
            beds = to_number(home.get("beds"))
            if not to_number(home.get("price")) or not sqft or not beds:
                continue
            if subject_id and home.get("id") == subject_id:
                continue
            if abs(beds - subject_beds) > ESTIMATE_BEDS_TOLERANCE:
                continue
            if abs(sqft - subject_sqft) / subject_sqft > ESTIMATE_SQFT_TOLERANCE_PCT:
                continue
            result.estimated_comps += 1

    if result.estimated_comps < MIN_ESTIMATED_COMPS:
        result.recommendations.append(
            f"Expand market data collection - need at least {MIN_ESTIMATED_COMPS} comparable homes"
        )
    if result.estimated_comps < TARGET_ESTIMATED_COMPS:
        result.recommendations.append("More market data would improve accuracy")

    sold = sum(
        1 for home in market
        if ListingStatus.from_string(home.get("status")) == ListingStatus.SOLD
    )
    if sold < MIN_TRAINING_RECORDS:
        result.recommendations.append("More sold properties would enable hedonic model training")

    return result
