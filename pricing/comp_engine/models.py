"""
Data models for the comparable pricing engine.

Defines the cleaned market record, the subject being valued, the trained
hedonic model artifact, adjusted comparables and the valuation result.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


# Raw records arrive from the data layer as plain mappings.
RawRecord = Dict[str, Any]

# Named hedonic features; absent keys read as 0.0.
FeatureVector = Dict[str, float]


class ListingStatus(Enum):
    """
    Canonical listing status.

    Ordered roughly by how reliable the price is as market evidence:
    closed sales first, builder plans that do not exist yet last.
    """
    SOLD = "sold"
    PENDING = "pending"
    ACTIVE = "active"
    SPEC = "spec"
    QUICK_MOVE_IN = "quick-move-in"
    UNDER_CONSTRUCTION = "under-construction"
    TO_BE_BUILT = "to-be-built"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "ListingStatus":
        """Map a free-text status to a canonical status (default ACTIVE)."""
        if not value:
            return cls.ACTIVE
        normalised = str(value).lower().strip()
        return STATUS_ALIASES.get(normalised, cls.ACTIVE)

    @property
    def is_new_construction(self) -> bool:
        return self in (
            ListingStatus.SPEC,
            ListingStatus.QUICK_MOVE_IN,
            ListingStatus.UNDER_CONSTRUCTION,
            ListingStatus.TO_BE_BUILT,
        )


STATUS_ALIASES: Dict[str, ListingStatus] = {
    "sold": ListingStatus.SOLD,
    "closed": ListingStatus.SOLD,
    "pending": ListingStatus.PENDING,
    "under contract": ListingStatus.PENDING,
    "contract pending": ListingStatus.PENDING,
    "active": ListingStatus.ACTIVE,
    "available": ListingStatus.ACTIVE,
    "for sale": ListingStatus.ACTIVE,
    "spec": ListingStatus.SPEC,
    "completed": ListingStatus.SPEC,
    "inventory": ListingStatus.SPEC,
    "quick-move-in": ListingStatus.QUICK_MOVE_IN,
    "quick move in": ListingStatus.QUICK_MOVE_IN,
    "move in ready": ListingStatus.QUICK_MOVE_IN,
    "qmi": ListingStatus.QUICK_MOVE_IN,
    "under construction": ListingStatus.UNDER_CONSTRUCTION,
    "under-construction": ListingStatus.UNDER_CONSTRUCTION,
    "building": ListingStatus.UNDER_CONSTRUCTION,
    "to be built": ListingStatus.TO_BE_BUILT,
    "to-be-built": ListingStatus.TO_BE_BUILT,
    "pre-construction": ListingStatus.TO_BE_BUILT,
}


class ValuationStatus(Enum):
    """Terminal status of a valuation call."""
    SUCCESS = "success"
    INSUFFICIENT_DATA = "insufficient_data"
    ERROR = "error"


class Classification(Enum):
    """
    Market position of the subject's price per square foot.

    Below: more than the band threshold under the comp median
    Market Fair: within the band threshold
    Above: more than the band threshold over the comp median
    """
    BELOW = "Below"
    MARKET_FAIR = "Market Fair"
    ABOVE = "Above"
    INSUFFICIENT_DATA = "Insufficient Data"


@dataclass(frozen=True)
class CleanRecord:
    """
    A validated market record.

    Produced only by the hygiene layer; every downstream component reads
    this type and never the raw mapping.
    """
    id: str
    price: float
    sqft: float
    beds: float
    baths: float  # baths_full + 0.5 * baths_half
    garage: float
    year_built: int
    is_new: bool
    price_ppsf: float
    status: ListingStatus
    subdivision: str
    school_zone: str
    dedupe_id: str
    list_date: date
    days_on_market: int
    month_index: int  # year * 12 + month
    property_type: str

    lot_sqft: Optional[float] = None
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    sold_date: Optional[date] = None


@dataclass(frozen=True)
class Subject:
    """
    The property being valued.

    Carries the record fields needed for comparison; immutable for the
    duration of a valuation call.
    """
    id: str
    price: float
    sqft: float
    beds: float
    baths: float
    garage: float
    year_built: int
    is_new: bool
    subdivision: str
    school_zone: str
    month_index: int
    property_type: str

    lot_sqft: Optional[float] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    @property
    def price_ppsf(self) -> float:
        return self.price / self.sqft

    @classmethod
    def from_record(cls, record: CleanRecord) -> "Subject":
        """Project a cleaned record onto the subject fields."""
        return cls(
            id=record.id,
            price=record.price,
            sqft=record.sqft,
            beds=record.beds,
            baths=record.baths,
            garage=record.garage,
            year_built=record.year_built,
            is_new=record.is_new,
            subdivision=record.subdivision,
            school_zone=record.school_zone,
            month_index=record.month_index,
            property_type=record.property_type,
            lot_sqft=record.lot_sqft,
            lat=record.lat,
            lng=record.lng,
        )


@dataclass(frozen=True)
class HedonicModel:
    """
    Trained ridge-regression pricing model in log-price space.

    `features` is the ordered list of feature names used at prediction
    time; `subdivisions` lists the subdivision levels encoded as one-hots.
    """
    coef: Dict[str, float]
    intercept: float
    alpha: float
    rmse_log: float
    features: List[str]
    subdivisions: List[str] = field(default_factory=list)
    training_size: int = 0

    def coefficient(self, name: str) -> float:
        return self.coef.get(name, 0.0)

    def to_dict(self) -> dict:
        return {
            "coef": dict(self.coef),
            "intercept": self.intercept,
            "alpha": self.alpha,
            "rmse_log": self.rmse_log,
            "features": list(self.features),
            "subdivisions": list(self.subdivisions),
            "training_size": self.training_size,
        }


@dataclass(frozen=True)
class AdjustedComparable:
    """
    A comparable re-priced into the subject's feature and time context.

    Percentages are in percent units (2.5 means +2.5%).
    """
    id: str
    original_price: float
    price_adj: float
    ppsf_adj: float
    total_adjustment_pct: float
    time_adj_pct: float
    other_adj_pct: float
    distance_miles: float
    comp_record: CleanRecord

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_price": self.original_price,
            "price_adj": self.price_adj,
            "ppsf_adj": self.ppsf_adj,
            "total_adjustment_pct": self.total_adjustment_pct,
            "time_adj_pct": self.time_adj_pct,
            "other_adj_pct": self.other_adj_pct,
            "distance_miles": self.distance_miles,
        }


@dataclass
class CompSelectionResult:
    """
    Result of comp selection.

    `criteria_used` names the relaxation tier that produced the comps,
    or `insufficient` when no tier reached the minimum.
    """
    comparables: List[CleanRecord]
    criteria_used: str
    total_candidates: int

    @property
    def comp_count(self) -> int:
        return len(self.comparables)


@dataclass(frozen=True)
class QualityPenalties:
    """Confidence penalties from adjustment and sizing checks."""
    large_adjustments: float = 0.0
    time_drift: float = 0.0
    sqft_mismatch: float = 0.0

    @property
    def total(self) -> float:
        return self.large_adjustments + self.time_drift + self.sqft_mismatch


@dataclass(frozen=True)
class ConfidenceComponents:
    """Breakdown of the 0-100 confidence score."""
    sample_size_score: float
    match_quality_score: float
    consistency_score: float
    penalties: float
    final_confidence: float


@dataclass(frozen=True)
class PriceRange:
    low: float
    high: float


@dataclass(frozen=True)
class PriceGap:
    delta_ppsf: float
    total_delta: float


@dataclass(frozen=True)
class TopComparable:
    id: str
    raw_ppsf: float
    adjusted_ppsf: float
    distance_miles: float


@dataclass(frozen=True)
class BandExplanation:
    median: float
    band_pct: float
    fair_range: PriceRange
    subject_ppsf: float
    p25: float = 0.0
    p75: float = 0.0


@dataclass(frozen=True)
class Reconciliation:
    """Median-based vs model-based price cross-check."""
    p_med: float
    p_hed: float
    diff_pct: float
    flag: bool


@dataclass(frozen=True)
class Explanation:
    top3: List[TopComparable]
    band: BandExplanation
    recon: Reconciliation

    @classmethod
    def empty(cls) -> "Explanation":
        return cls(
            top3=[],
            band=BandExplanation(
                median=0.0,
                band_pct=0.0,
                fair_range=PriceRange(0.0, 0.0),
                subject_ppsf=0.0,
            ),
            recon=Reconciliation(p_med=0.0, p_hed=0.0, diff_pct=0.0, flag=False),
        )


@dataclass
class ModelStats:
    comp_count: int = 0
    adjusted_comps: List[AdjustedComparable] = field(default_factory=list)
    hedonic_model: Optional[HedonicModel] = None
    penalties: float = 0.0
    criteria_used: str = ""
    confidence_components: Optional[ConfidenceComponents] = None
    adjustment_warnings: List[str] = field(default_factory=list)
    risk: Optional[dict] = None


@dataclass
class ValueResult:
    """
    Complete valuation result for a subject property.

    The only object the engine hands back to its caller. Non-success
    outcomes carry zeroed numbers, empty explanation blocks and a message.
    """
    status: ValuationStatus
    classification: Classification
    confidence: int
    median_ppsf: float
    suggested_price_range: PriceRange
    price_gap: PriceGap
    explain: Explanation
    model_stats: ModelStats = field(default_factory=ModelStats)
    message: str = ""

    @property
    def is_success(self) -> bool:
        return self.status == ValuationStatus.SUCCESS

    @classmethod
    def insufficient_data(cls, message: str) -> "ValueResult":
        return cls._terminal(ValuationStatus.INSUFFICIENT_DATA, message)

    @classmethod
    def error(cls, message: str) -> "ValueResult":
        return cls._terminal(ValuationStatus.ERROR, message)

    @classmethod
    def _terminal(cls, status: ValuationStatus, message: str) -> "ValueResult":
        return cls(
            status=status,
            classification=Classification.INSUFFICIENT_DATA,
            confidence=0,
            median_ppsf=0.0,
            suggested_price_range=PriceRange(0.0, 0.0),
            price_gap=PriceGap(0.0, 0.0),
            explain=Explanation.empty(),
            model_stats=ModelStats(),
            message=message,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        stats = self.model_stats
        return {
            "status": self.status.value,
            "classification": self.classification.value,
            "confidence": self.confidence,
            "median_ppsf": self.median_ppsf,
            "suggested_price_range": asdict(self.suggested_price_range),
            "price_gap": asdict(self.price_gap),
            "explain": asdict(self.explain),
            "model_stats": {
                "comp_count": stats.comp_count,
                "adjusted_comps": [c.to_dict() for c in stats.adjusted_comps],
                "hedonic_model": stats.hedonic_model.to_dict() if stats.hedonic_model else None,
                "penalties": stats.penalties,
                "criteria_used": stats.criteria_used,
                "confidence_components": (
                    asdict(stats.confidence_components)
                    if stats.confidence_components else None
                ),
                "adjustment_warnings": list(stats.adjustment_warnings),
                "risk": stats.risk,
            },
            "message": self.message,
        }
