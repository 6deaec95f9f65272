"""
Comparable Selection for the pricing engine

Implements iterative constraint relaxation over six ordered tiers:
- strict: same subdivision/school zone (or within 1 mile), 90 days,
  beds +/-1, sqft +/-15%, year +/-5, same property type
- relaxed_time: 180 days
- relaxed_radius: area match dropped, within 2 miles
- relaxed_sqft: sqft +/-20%
- relaxed_beds: beds +/-2, year +/-7
- relaxed_year: year +/-10, any property type

Also exposes the geo distance and feature distance helpers shared with
price adjustment and confidence scoring.
"""

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

from .models import CleanRecord, CompSelectionResult, ListingStatus, Subject


# =============================================================================
# Configuration Constants
# =============================================================================

# Distance assumed when either point has no coordinates (miles)
DEFAULT_DISTANCE_MILES = 0.5

EARTH_RADIUS_MILES = 3959.0

MAX_COMPS = 15
DEFAULT_MIN_COMPS = 2

CRITERIA_INSUFFICIENT = "insufficient"

# Status reliability for ranking (sold is hard evidence, plans are not)
STATUS_SCORES = {
    ListingStatus.SOLD: 100,
    ListingStatus.PENDING: 90,
    ListingStatus.SPEC: 85,
    ListingStatus.QUICK_MOVE_IN: 80,
    ListingStatus.ACTIVE: 70,
    ListingStatus.UNDER_CONSTRUCTION: 60,
    ListingStatus.TO_BE_BUILT: 50,
}

# Ranking weights
WEIGHT_STATUS = 0.25
WEIGHT_LOCATION = 0.25
WEIGHT_SIZE = 0.20
WEIGHT_BEDS = 0.10
WEIGHT_RECENCY = 0.10
WEIGHT_PRICE = 0.10

# Feature distance weights
DISTANCE_WEIGHT_BEDS = 0.2
DISTANCE_WEIGHT_BATHS = 0.2
DISTANCE_WEIGHT_SQFT = 0.3
DISTANCE_WEIGHT_AGE = 0.1
DISTANCE_WEIGHT_GEO = 0.1
DISTANCE_WEIGHT_TIME = 0.1

GEO_DISTANCE_CAP_MILES = 2.0
TIME_DISTANCE_CAP_DAYS = 180.0


@dataclass(frozen=True)
class RelaxationTier:
    """One level of comp eligibility criteria."""
    name: str
    same_area_required: bool
    radius_miles: float
    days_lookback: int
    beds_tolerance: int
    sqft_tolerance_pct: float
    year_tolerance: int
    property_type_match: bool


CRITERIA_TIERS = (
    RelaxationTier("strict", True, 1.0, 90, 1, 0.15, 5, True),
    RelaxationTier("relaxed_time", True, 1.0, 180, 1, 0.15, 5, True),
    RelaxationTier("relaxed_radius", False, 2.0, 180, 1, 0.15, 5, True),
    RelaxationTier("relaxed_sqft", False, 2.0, 180, 1, 0.20, 5, True),
    RelaxationTier("relaxed_beds", False, 2.0, 180, 2, 0.20, 7, True),
    RelaxationTier("relaxed_year", False, 2.0, 180, 2, 0.20, 10, False),
)


class ComparableSelector:
    """
    Selects and ranks comparables for a subject.

    Tiers are tried strictly in order; the first tier reaching the minimum
    count wins. Falling through every tier is a terminal, low-confidence
    outcome, not an error.
    """

    def __init__(self, reference_date: date = None):
        """
        Initialize selector with reference date.

        Args:
            reference_date: Date lookback windows are measured from (default: today)
        """
        self._reference_date = reference_date or date.today()

    def find_comps(
        self,
        subject: Subject,
        pool: Iterable[CleanRecord],
        min_comps: int = DEFAULT_MIN_COMPS,
    ) -> CompSelectionResult:
        """
        Find comparables with progressive relaxation.

        Args:
            subject: The property being valued
            pool: Cleaned market records
            min_comps: Minimum comps a tier must produce to be accepted

        Returns:
            CompSelectionResult with at most 15 ranked comps and the tier name
        """
        # Records without an id never match the subject
        candidates = [c for c in pool if not (subject.id and c.id == subject.id)]

        for tier in CRITERIA_TIERS:
            matches = self.filter_tier(subject, candidates, tier)
            if len(matches) >= min_comps:
                return CompSelectionResult(
                    comparables=self.rank(subject, matches)[:MAX_COMPS],
                    criteria_used=tier.name,
                    total_candidates=len(candidates),
                )

        # Every tier fell short; hand back the widest tier's comps
        widest = self.rank(subject, self.filter_tier(subject, candidates, CRITERIA_TIERS[-1]))

        return CompSelectionResult(
            comparables=widest[:MAX_COMPS],
            criteria_used=CRITERIA_INSUFFICIENT,
            total_candidates=len(candidates),
        )

    def filter_tier(
        self,
        subject: Subject,
        candidates: List[CleanRecord],
        tier: RelaxationTier,
    ) -> List[CleanRecord]:
        """Apply one tier's criteria; a comp must pass ALL of them."""
        cutoff = self._reference_date - timedelta(days=tier.days_lookback)
        return [
            comp for comp in candidates
            if self._passes_tier(subject, comp, tier, cutoff)
        ]

    def _passes_tier(
        self,
        subject: Subject,
        comp: CleanRecord,
        tier: RelaxationTier,
        cutoff: date,
    ) -> bool:
        # Location
        within_radius = miles_between(subject, comp) <= tier.radius_miles
        if tier.same_area_required:
            if not (_same_area(subject, comp) or within_radius):
                return False
        elif not within_radius:
            return False

        # Listing recency
        if comp.list_date < cutoff:
            return False

        if abs(comp.beds - subject.beds) > tier.beds_tolerance:
            return False

        if abs(comp.sqft - subject.sqft) / subject.sqft > tier.sqft_tolerance_pct:
            return False

        if abs(comp.year_built - subject.year_built) > tier.year_tolerance:
            return False

        if tier.property_type_match and comp.property_type != subject.property_type:
            return False

        return True

    def rank(self, subject: Subject, comps: List[CleanRecord]) -> List[CleanRecord]:
        """Sort comps by weighted similarity score, best first (stable)."""
        return sorted(comps, key=lambda c: comp_score(subject, c), reverse=True)


def comp_score(subject: Subject, comp: CleanRecord) -> float:
    """
    Weighted 50-100 similarity score used for ranking.

    status 25%, location 25%, size 20%, beds 10%, recency 10%, PPSF 10%
    """
    status_score = STATUS_SCORES.get(comp.status, 50)

    if subject.subdivision and comp.subdivision == subject.subdivision:
        location_score = 100.0
    elif comp.school_zone == subject.school_zone:
        location_score = 90.0
    else:
        location_score = max(50.0, 100.0 - miles_between(subject, comp) * 10)

    sqft_diff = abs(comp.sqft - subject.sqft) / subject.sqft
    size_score = max(50.0, 100.0 - sqft_diff * 200)

    bed_score = max(80.0, 100.0 - abs(comp.beds - subject.beds) * 10)

    recency_score = max(60.0, 100.0 - comp.days_on_market / 30)

    subject_ppsf = subject.price_ppsf
    ppsf_diff = abs(comp.price_ppsf - subject_ppsf) / subject_ppsf
    price_score = max(50.0, 100.0 - ppsf_diff * 100)

    return (
        status_score * WEIGHT_STATUS
        + location_score * WEIGHT_LOCATION
        + size_score * WEIGHT_SIZE
        + bed_score * WEIGHT_BEDS
        + recency_score * WEIGHT_RECENCY
        + price_score * WEIGHT_PRICE
    )


def find_comps(
    subject: Subject,
    pool: Iterable[CleanRecord],
    min_comps: int = DEFAULT_MIN_COMPS,
    reference_date: Optional[date] = None,
) -> CompSelectionResult:
    """Convenience wrapper around ComparableSelector.find_comps."""
    return ComparableSelector(reference_date).find_comps(subject, pool, min_comps)


def miles_between(a, b) -> float:
    """
    Haversine distance in miles between two objects with lat/lng.

    Returns 0.5 miles ("assumed nearby") when either point lacks
    coordinates.
    """
    if a.lat is None or a.lng is None or b.lat is None or b.lng is None:
        return DEFAULT_DISTANCE_MILES
    return haversine_miles(a.lat, a.lng, b.lat, b.lng)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in miles using Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in miles
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return EARTH_RADIUS_MILES * c


def feature_distance(subject: Subject, comp: CleanRecord) -> float:
    """
    Weighted normalised dissimilarity in [0, 1].

    0 means identical, 1 maximally different. Each term is capped at 1
    before weighting: beds/baths/sqft relative deltas, age relative to the
    subject's age since 1900, distance over 2 miles, days on market over 180.
    """
    beds_diff = min(1.0, abs(comp.beds - subject.beds) / max(subject.beds, 1))
    baths_diff = min(1.0, abs(comp.baths - subject.baths) / max(subject.baths, 1))
    sqft_diff = min(1.0, abs(comp.sqft - subject.sqft) / subject.sqft)
    age_diff = min(1.0, abs(comp.year_built - subject.year_built) / max(subject.year_built - 1900, 1))
    geo_diff = min(1.0, miles_between(subject, comp) / GEO_DISTANCE_CAP_MILES)
    time_diff = min(1.0, comp.days_on_market / TIME_DISTANCE_CAP_DAYS)

    distance = (
        beds_diff * DISTANCE_WEIGHT_BEDS
        + baths_diff * DISTANCE_WEIGHT_BATHS
        + sqft_diff * DISTANCE_WEIGHT_SQFT
        + age_diff * DISTANCE_WEIGHT_AGE
        + geo_diff * DISTANCE_WEIGHT_GEO
        + time_diff * DISTANCE_WEIGHT_TIME
    )

    return min(1.0, distance)


def _same_area(subject: Subject, comp: CleanRecord) -> bool:
    if subject.subdivision and comp.subdivision == subject.subdivision:
        return True
    return bool(subject.school_zone) and comp.school_zone == subject.school_zone
