"""
Data Hygiene - Raw Market Records to CleanRecord

This is the ONLY path by which market data enters the pricing engine.
Raw records are coerced, normalised, deduplicated and range-checked;
anything that cannot be cleaned is dropped, never raised.

Funnel: sanitize -> drop None -> dedupe -> is_valid_record
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Final, Iterable, Mapping, Optional

from .models import CleanRecord, ListingStatus


logger = logging.getLogger(__name__)


# =============================================================================
# Validation Thresholds
# =============================================================================

MIN_PRICE: Final[float] = 50_000
MAX_PRICE: Final[float] = 2_000_000
MIN_SQFT: Final[float] = 500
MAX_SQFT: Final[float] = 10_000
MIN_BEDS: Final[float] = 1
MAX_BEDS: Final[float] = 8
MIN_BATHS: Final[float] = 1
MAX_BATHS: Final[float] = 10
MIN_PPSF: Final[float] = 50
MAX_PPSF: Final[float] = 500
MIN_YEAR_BUILT: Final[int] = 1900
MAX_YEARS_AHEAD: Final[int] = 2
MAX_DAYS_ON_MARKET: Final[int] = 3650


# =============================================================================
# Normalisation Tables
# =============================================================================

DEFAULT_PROPERTY_TYPE: Final = "single-family"

# Checked in order; first keyword found in the normalised text wins
PROPERTY_TYPE_KEYWORDS: Final[tuple[tuple[str, str], ...]] = (
    ("single", "single-family"),
    ("detached", "single-family"),
    ("townhome", "townhome"),
    ("townhouse", "townhome"),
    ("town", "townhome"),
    ("condo", "condo"),
    ("duplex", "duplex"),
    ("villa", "villa"),
)

SUPPORTED_PROPERTY_TYPES: Final[tuple[str, ...]] = (
    "single-family",
    "townhome",
    "condo",
    "duplex",
    "villa",
)

DEFAULT_SCHOOL_ZONE: Final = "union county public schools"

# Address keywords used to derive a school zone when none is supplied
SCHOOL_ZONE_HINTS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("indian trail", "union"), "union county public schools"),
    (("charlotte", "matthews", "mint hill"), "charlotte mecklenburg schools"),
)

_NON_WORD: Final = re.compile(r"[^\w\s]")
_WHITESPACE: Final = re.compile(r"\s+")


# =============================================================================
# Field Helpers
# =============================================================================


def normalise_text(text: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    cleaned = _NON_WORD.sub("", str(text).lower().strip())
    return _WHITESPACE.sub(" ", cleaned).strip()


def to_number(value: Any) -> Optional[float]:
    """Coerce a raw value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "").replace("$", "")
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a date, datetime or ISO-8601 string."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def month_index(day: date) -> int:
    """Months since year 0: year * 12 + month."""
    return day.year * 12 + day.month


def normalise_school_zone(school_zone: Optional[str], address: Optional[str]) -> str:
    """Normalise the school zone, deriving it from the address when absent."""
    if school_zone and str(school_zone).strip():
        return normalise_text(school_zone)

    normalised_address = normalise_text(address)
    if normalised_address:
        for keywords, zone in SCHOOL_ZONE_HINTS:
            if any(keyword in normalised_address for keyword in keywords):
                return zone

    return DEFAULT_SCHOOL_ZONE


def normalise_property_type(property_type: Optional[str]) -> str:
    normalised = normalise_text(property_type)
    if not normalised:
        return DEFAULT_PROPERTY_TYPE
    for keyword, canonical in PROPERTY_TYPE_KEYWORDS:
        if keyword in normalised:
            return canonical
    return DEFAULT_PROPERTY_TYPE


def create_dedupe_id(raw: Mapping[str, Any]) -> str:
    """
    Build the composite identity used for deduplication.

    external listing id | normalised address | normalised plan name.
    Records with none of those fall back to a content hash.
    """
    external_id = raw.get("mls_id") or raw.get("external_id") or ""
    parts = [
        str(external_id).strip(),
        normalise_text(raw.get("address")),
        normalise_text(raw.get("plan_name")),
    ]
    parts = [p for p in parts if p]
    if parts:
        return "|".join(parts)

    content = "|".join(
        str(raw.get(key, ""))
        for key in ("id", "price", "sqft", "beds", "list_date")
    )
    return f"unknown_{hashlib.sha256(content.encode()).hexdigest()[:12]}"


def is_new_construction(status: ListingStatus, year_built: int, reference_date: date) -> bool:
    """New if built within the last year or sold off a builder status."""
    return year_built >= reference_date.year - 1 or status.is_new_construction


# =============================================================================
# Funnel
# =============================================================================


def sanitize(raw: Mapping[str, Any], reference_date: Optional[date] = None) -> Optional[CleanRecord]:
    """
    Coerce a raw record into a CleanRecord.

    Args:
        raw: Raw record mapping from the data layer
        reference_date: Date used for days on market and "current year"
            (default: today)

    Returns:
        CleanRecord, or None if price, sqft or beds are missing/non-positive
        or the record cannot be read at all
    """
    reference_date = reference_date or date.today()

    try:
        price = to_number(raw.get("price"))
        sqft = to_number(raw.get("sqft"))
        beds = to_number(raw.get("beds"))

        if not price or price <= 0:
            return None
        if not sqft or sqft <= 0:
            return None
        if not beds or beds <= 0:
            return None

        baths_full = to_number(raw.get("baths_full")) or 0.0
        baths_half = to_number(raw.get("baths_half")) or 0.0
        garage = to_number(raw.get("garage")) or 0.0
        lot_sqft = to_number(raw.get("lot_sqft"))
        year_built = int(to_number(raw.get("year_built")) or reference_date.year)

        status = ListingStatus.from_string(raw.get("status"))

        list_date = parse_date(raw.get("list_date")) or reference_date
        sold_date = parse_date(raw.get("sold_date"))
        end_date = sold_date or reference_date
        days_on_market = max(1, (end_date - list_date).days)

        return CleanRecord(
            id=str(raw.get("id") or ""),
            price=price,
            sqft=sqft,
            beds=beds,
            baths=baths_full + 0.5 * baths_half,
            garage=garage,
            lot_sqft=lot_sqft,
            year_built=year_built,
            is_new=is_new_construction(status, year_built, reference_date),
            price_ppsf=price / sqft,
            status=status,
            address=str(raw.get("address") or ""),
            subdivision=normalise_text(raw.get("subdivision") or raw.get("community") or ""),
            school_zone=normalise_school_zone(raw.get("school_zone"), raw.get("address")),
            dedupe_id=create_dedupe_id(raw),
            lat=to_number(raw.get("lat")),
            lng=to_number(raw.get("lng")),
            list_date=list_date,
            sold_date=sold_date,
            days_on_market=days_on_market,
            month_index=month_index(list_date),
            property_type=normalise_property_type(raw.get("property_type")),
        )
    except (AttributeError, TypeError, ValueError, OverflowError) as e:
        logger.warning("Dropping unreadable record %r: %s", _record_id(raw), e)
        return None


def dedupe(records: Iterable[CleanRecord]) -> list[CleanRecord]:
    """Keep the first record per dedupe_id, preserving input order."""
    seen: set[str] = set()
    result: list[CleanRecord] = []
    for record in records:
        if record.dedupe_id in seen:
            continue
        seen.add(record.dedupe_id)
        result.append(record)
    return result


def is_valid_record(record: CleanRecord, reference_date: Optional[date] = None) -> bool:
    """Check the numeric range invariants of a cleaned record."""
    current_year = (reference_date or date.today()).year

    if not MIN_PRICE <= record.price <= MAX_PRICE:
        return False
    if not MIN_SQFT <= record.sqft <= MAX_SQFT:
        return False
    if not MIN_BEDS <= record.beds <= MAX_BEDS:
        return False
    if not MIN_BATHS <= record.baths <= MAX_BATHS:
        return False
    if not MIN_PPSF <= record.price_ppsf <= MAX_PPSF:
        return False
    if not MIN_YEAR_BUILT <= record.year_built <= current_year + MAX_YEARS_AHEAD:
        return False
    if not 0 <= record.days_on_market <= MAX_DAYS_ON_MARKET:
        return False

    return True


def load_and_clean(
    raw_records: Iterable[Mapping[str, Any]],
    reference_date: Optional[date] = None,
) -> list[CleanRecord]:
    """
    Run the full hygiene funnel over a raw market pool.

    Never raises; invalid input only shrinks the returned pool.
    """
    raw_list = list(raw_records or [])

    sanitized = [
        record
        for record in (sanitize(raw, reference_date) for raw in raw_list)
        if record is not None
    ]
    deduped = dedupe(sanitized)
    validated = [r for r in deduped if is_valid_record(r, reference_date)]

    logger.info(
        "Data cleaning: %d raw -> %d sanitized -> %d deduped -> %d validated",
        len(raw_list), len(sanitized), len(deduped), len(validated),
    )

    return validated


def _record_id(raw: Any) -> str:
    try:
        return str(raw.get("id", "?"))
    except AttributeError:
        return "?"
