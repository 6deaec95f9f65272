"""
Tests for data hygiene.

Verifies:
- Raw fields are coerced and normalised
- Records missing price, sqft or beds are dropped, never raised
- Duplicates collapse to the first occurrence
- Range validation rejects implausible records
"""

import pytest
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pricing.comp_engine.hygiene import (
    DEFAULT_SCHOOL_ZONE,
    create_dedupe_id,
    dedupe,
    is_valid_record,
    load_and_clean,
    normalise_property_type,
    normalise_text,
    sanitize,
    to_number,
)
from pricing.comp_engine.models import ListingStatus
from market_fixtures import REFERENCE_DATE, make_record, market_raw, subject_raw


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def raw_record():
    """Single raw record as supplied by the data layer."""
    return {
        "id": "raw-1",
        "price": "$415,000",
        "sqft": "2,000",
        "beds": 4,
        "baths_full": 2,
        "baths_half": 1,
        "garage": 2,
        "year_built": 2023,
        "status": "Closed",
        "address": "100 Elm St, Indian Trail, NC",
        "community": "Meadow-Brook ",
        "lat": 35.081,
        "lng": -80.641,
        "list_date": "2023-11-01",
        "sold_date": "2023-11-15",
        "property_type": "Single Family Detached",
    }


# =============================================================================
# Sanitize Tests
# =============================================================================

class TestSanitize:
    """Tests for raw record coercion."""

    def test_coerces_fields(self, raw_record):
        record = sanitize(raw_record, REFERENCE_DATE)

        assert record is not None
        assert record.price == 415000
        assert record.sqft == 2000
        assert record.baths == 2.5
        assert record.price_ppsf == pytest.approx(207.5)
        assert record.status == ListingStatus.SOLD
        assert record.property_type == "single-family"

    def test_community_used_as_subdivision(self, raw_record):
        record = sanitize(raw_record, REFERENCE_DATE)
        assert record.subdivision == "meadowbrook"

    def test_dates_and_month_index(self, raw_record):
        record = sanitize(raw_record, REFERENCE_DATE)

        assert record.list_date == date(2023, 11, 1)
        assert record.sold_date == date(2023, 11, 15)
        assert record.days_on_market == 14
        assert record.month_index == 2023 * 12 + 11

    def test_unsold_days_on_market_uses_reference_date(self, raw_record):
        raw_record.pop("sold_date")
        raw_record["status"] = "active"
        record = sanitize(raw_record, REFERENCE_DATE)

        assert record.days_on_market == (REFERENCE_DATE - date(2023, 11, 1)).days

    def test_days_on_market_at_least_one(self, raw_record):
        raw_record["sold_date"] = raw_record["list_date"]
        assert sanitize(raw_record, REFERENCE_DATE).days_on_market == 1

    def test_new_construction_flag(self, raw_record):
        # Built within the last year
        assert sanitize(raw_record, REFERENCE_DATE).is_new is True

        raw_record["year_built"] = 2015
        assert sanitize(raw_record, REFERENCE_DATE).is_new is False

        raw_record["status"] = "quick move in"
        assert sanitize(raw_record, REFERENCE_DATE).is_new is True

    @pytest.mark.parametrize("field", ["price", "sqft", "beds"])
    @pytest.mark.parametrize("value", [None, 0, -5, "", "n/a"])
    def test_missing_core_fields_dropped(self, raw_record, field, value):
        raw_record[field] = value
        assert sanitize(raw_record, REFERENCE_DATE) is None

    def test_unreadable_record_dropped(self):
        assert sanitize("not a record", REFERENCE_DATE) is None

    def test_school_zone_derived_from_address(self, raw_record):
        assert sanitize(raw_record, REFERENCE_DATE).school_zone == "union county public schools"

        raw_record["address"] = "1 Trade St, Charlotte, NC"
        assert sanitize(raw_record, REFERENCE_DATE).school_zone == "charlotte mecklenburg schools"

        raw_record["address"] = "1 Nowhere Rd"
        assert sanitize(raw_record, REFERENCE_DATE).school_zone == DEFAULT_SCHOOL_ZONE

    def test_explicit_school_zone_normalised(self, raw_record):
        raw_record["school_zone"] = "  Union County Public Schools "
        assert sanitize(raw_record, REFERENCE_DATE).school_zone == "union county public schools"


class TestFieldHelpers:
    """Tests for coercion and normalisation helpers."""

    @pytest.mark.parametrize("value,expected", [
        (415000, 415000.0),
        ("415,000", 415000.0),
        ("$1,250.50", 1250.5),
        ("", None),
        (None, None),
        ("abc", None),
        (True, None),
        (float("nan"), None),
        (float("inf"), None),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_normalise_text(self):
        assert normalise_text("  Meadow-Brook   Estates! ") == "meadowbrook estates"
        assert normalise_text(None) == ""

    @pytest.mark.parametrize("raw,expected", [
        ("Single Family", "single-family"),
        ("Townhouse", "townhome"),
        ("CONDO", "condo"),
        ("duplex", "duplex"),
        ("Villa", "villa"),
        (None, "single-family"),
        ("mobile", "single-family"),
    ])
    def test_normalise_property_type(self, raw, expected):
        assert normalise_property_type(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("closed", ListingStatus.SOLD),
        ("Under Contract", ListingStatus.PENDING),
        ("for sale", ListingStatus.ACTIVE),
        ("inventory", ListingStatus.SPEC),
        ("QMI", ListingStatus.QUICK_MOVE_IN),
        ("building", ListingStatus.UNDER_CONSTRUCTION),
        ("pre-construction", ListingStatus.TO_BE_BUILT),
        ("mystery", ListingStatus.ACTIVE),
        (None, ListingStatus.ACTIVE),
    ])
    def test_status_aliases(self, raw, expected):
        assert ListingStatus.from_string(raw) == expected

    def test_dedupe_id_composite(self):
        dedupe_id = create_dedupe_id({
            "mls_id": "MLS1",
            "address": "100 Elm St.",
            "plan_name": "Ashford",
        })
        assert dedupe_id == "MLS1|100 elm st|ashford"

    def test_dedupe_id_accepts_external_id_alias(self):
        assert create_dedupe_id({"external_id": "EXT9"}) == "EXT9"

    def test_dedupe_id_content_hash_is_stable(self):
        raw = {"id": "x", "price": 1, "sqft": 2, "beds": 3}
        assert create_dedupe_id(raw) == create_dedupe_id(dict(raw))
        assert create_dedupe_id(raw).startswith("unknown_")


# =============================================================================
# Funnel Tests
# =============================================================================

class TestDedupe:
    """Tests for duplicate removal."""

    def test_keeps_first_occurrence(self):
        first = make_record(id="a", dedupe_id="same")
        second = make_record(id="b", dedupe_id="same")
        third = make_record(id="c", dedupe_id="other")

        result = dedupe([first, second, third])

        assert [r.id for r in result] == ["a", "c"]


class TestValidation:
    """Tests for range checks."""

    def test_valid_record(self):
        assert is_valid_record(make_record(), REFERENCE_DATE)

    @pytest.mark.parametrize("overrides", [
        {"price": 40000.0},
        {"price": 2500000.0, "sqft": 9000.0},
        {"sqft": 400.0, "price": 60000.0},
        {"beds": 9},
        {"baths": 0.5},
        {"price": 1200000.0},  # 600/sqft
        {"price": 90000.0},  # 45/sqft
        {"year_built": 1899},
        {"year_built": 2027},
        {"days_on_market": 4000},
    ])
    def test_out_of_range(self, overrides):
        assert not is_valid_record(make_record(**overrides), REFERENCE_DATE)

    def test_year_built_allows_two_years_ahead(self):
        assert is_valid_record(make_record(year_built=2026), REFERENCE_DATE)


class TestLoadAndClean:
    """Tests for the full hygiene funnel."""

    def test_fixture_market_survives(self):
        pool = load_and_clean(market_raw(), REFERENCE_DATE)
        assert len(pool) == len(market_raw())

    def test_drops_invalid_and_duplicates(self):
        raw = market_raw()
        raw.append(dict(raw[0], id="comp-1-copy"))  # same address, same dedupe id
        raw.append({"id": "broken", "price": None, "sqft": 2000, "beds": 3})
        raw.append(dict(raw[1], id="too-cheap", price=20000, address="1 Other St"))

        pool = load_and_clean(raw, REFERENCE_DATE)
        ids = [r.id for r in pool]

        assert "comp-1-copy" not in ids
        assert "broken" not in ids
        assert "too-cheap" not in ids
        assert len(pool) == len(market_raw())

    def test_empty_and_none_input(self):
        assert load_and_clean([], REFERENCE_DATE) == []
        assert load_and_clean(None, REFERENCE_DATE) == []

    def test_logs_funnel_counts(self, caplog):
        with caplog.at_level("INFO", logger="pricing.comp_engine.hygiene"):
            load_and_clean(market_raw(), REFERENCE_DATE)
        assert "Data cleaning" in caplog.text

    def test_subject_sanitizes(self):
        record = sanitize(subject_raw(), REFERENCE_DATE)
        assert record.id == "subject-1"
        assert record.is_new is True
        assert record.lot_sqft == 7500
