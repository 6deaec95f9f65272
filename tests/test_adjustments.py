"""
Tests for comparable price adjustment.

Verifies:
- Hedonic adjustment isolates the time effect through the month coefficient
- Heuristic dollar adjustments when no model is available
- Numeric failures fall back to an unadjusted comp
- Validation flags large or non-positive adjustments without dropping comps
- Adjustment statistics
"""

import math

import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pricing.comp_engine.adjustments import (
    BATH_ADJ,
    GARAGE_ADJ,
    NEW_CONSTRUCTION_ADJ_PER_SQFT,
    adjust_comp_price,
    adjust_comp_price_heuristic,
    adjust_comparables,
    adjustment_stats,
    validate_adjustments,
)
from pricing.comp_engine.models import AdjustedComparable, HedonicModel
from market_fixtures import make_record, make_subject


SUBJECT_MONTH = 2024 * 12 + 1


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def subject():
    return make_subject(month_index=SUBJECT_MONTH)


@pytest.fixture
def simple_model():
    return HedonicModel(
        coef={"log_sqft": 1.0, "month": 0.01},
        intercept=5.0,
        alpha=0.1,
        rmse_log=0.05,
        features=["log_sqft", "month"],
    )


def adjusted_comp(comp_id="c1", total=0.0, time=0.0, price_adj=400000.0, ppsf_adj=200.0):
    return AdjustedComparable(
        id=comp_id,
        original_price=400000.0,
        price_adj=price_adj,
        ppsf_adj=ppsf_adj,
        total_adjustment_pct=total,
        time_adj_pct=time,
        other_adj_pct=total - time,
        distance_miles=0.5,
        comp_record=make_record(id=comp_id),
    )


# =============================================================================
# Hedonic Adjustment Tests
# =============================================================================

class TestHedonicAdjustment:
    """Tests for model-based adjustment."""

    def test_time_and_feature_split(self, subject, simple_model):
        comp = make_record(sqft=2000.0, price=410000.0, month_index=SUBJECT_MONTH - 2)

        result = adjust_comp_price(comp, subject, simple_model)

        expected_time = math.exp(0.02) - 1
        expected_total = 1.025 * math.exp(0.02) - 1
        assert result.time_adj_pct == pytest.approx(expected_time * 100)
        assert result.total_adjustment_pct == pytest.approx(expected_total * 100)
        assert result.other_adj_pct == pytest.approx((expected_total - expected_time) * 100)
        assert result.price_adj == pytest.approx(410000.0 * (1 + expected_total))
        assert result.ppsf_adj == pytest.approx(result.price_adj / 2000.0)

    def test_same_month_has_no_time_effect(self, subject, simple_model):
        comp = make_record(sqft=2050.0, month_index=SUBJECT_MONTH)

        result = adjust_comp_price(comp, subject, simple_model)

        assert result.time_adj_pct == pytest.approx(0.0)
        assert result.total_adjustment_pct == pytest.approx(0.0)
        assert result.price_adj == pytest.approx(comp.price)

    def test_overflow_falls_back_to_unadjusted(self, subject, caplog):
        model = HedonicModel(
            coef={"month": 1000.0},
            intercept=0.0,
            alpha=0.1,
            rmse_log=0.05,
            features=["month"],
        )
        comp = make_record(month_index=SUBJECT_MONTH - 2)

        with caplog.at_level("WARNING", logger="pricing.comp_engine.adjustments"):
            result = adjust_comp_price(comp, subject, model)

        assert result.price_adj == comp.price
        assert result.ppsf_adj == comp.price_ppsf
        assert result.total_adjustment_pct == 0.0
        assert "Hedonic adjustment failed" in caplog.text

    def test_keeps_distance_and_record(self, subject, simple_model):
        comp = make_record(id="near")
        result = adjust_comp_price(comp, subject, simple_model)

        assert result.comp_record is comp
        assert result.distance_miles < 0.2


# =============================================================================
# Heuristic Adjustment Tests
# =============================================================================

class TestHeuristicAdjustment:
    """Tests for fixed-dollar adjustment."""

    def test_larger_comp_with_extra_half_bath(self, subject):
        comp = make_record(
            id="comp-4",
            price=450000.0,
            sqft=2200.0,
            baths=3.0,
            month_index=SUBJECT_MONTH,
        )

        result = adjust_comp_price_heuristic(comp, subject)

        # -150 sqft * $15 and -0.5 bath * $12,000
        assert result.price_adj == pytest.approx(441750.0)
        assert result.ppsf_adj == pytest.approx(441750.0 / 2200.0)
        assert result.time_adj_pct == 0.0

    def test_small_sqft_difference_ignored(self, subject):
        comp = make_record(sqft=2010.0, price=410000.0, month_index=SUBJECT_MONTH)
        assert adjust_comp_price_heuristic(comp, subject).price_adj == pytest.approx(410000.0)

    def test_garage_and_beds(self, subject):
        comp = make_record(sqft=2050.0, beds=3, garage=1, month_index=SUBJECT_MONTH)
        result = adjust_comp_price_heuristic(comp, subject)

        assert result.price_adj - comp.price == pytest.approx(8000.0 + GARAGE_ADJ)

    def test_half_bath_threshold(self, subject):
        comp = make_record(sqft=2050.0, baths=2.0, month_index=SUBJECT_MONTH)
        result = adjust_comp_price_heuristic(comp, subject)

        assert result.price_adj - comp.price == pytest.approx(0.5 * BATH_ADJ)

    def test_new_construction_premium(self, subject):
        resale = make_record(sqft=2050.0, is_new=False, month_index=SUBJECT_MONTH)
        result = adjust_comp_price_heuristic(resale, subject)

        assert result.price_adj - resale.price == pytest.approx(2050 * NEW_CONSTRUCTION_ADJ_PER_SQFT)

        resale_subject = make_subject(is_new=False, month_index=SUBJECT_MONTH)
        new_comp = make_record(sqft=2050.0, is_new=True, month_index=SUBJECT_MONTH)
        result = adjust_comp_price_heuristic(new_comp, resale_subject)

        assert result.price_adj - new_comp.price == pytest.approx(-2050 * NEW_CONSTRUCTION_ADJ_PER_SQFT)

    def test_time_appreciation(self, subject):
        comp = make_record(sqft=2050.0, price=410000.0, month_index=SUBJECT_MONTH - 3)
        result = adjust_comp_price_heuristic(comp, subject)

        assert result.price_adj == pytest.approx(410000.0 * (1 + 0.003 * 3))
        assert result.time_adj_pct == pytest.approx(0.9)
        assert result.other_adj_pct == pytest.approx(0.0)

    def test_one_month_gap_not_time_adjusted(self, subject):
        comp = make_record(sqft=2050.0, month_index=SUBJECT_MONTH - 1)
        result = adjust_comp_price_heuristic(comp, subject)

        assert result.time_adj_pct == 0.0
        assert result.price_adj == pytest.approx(comp.price)

    def test_adjust_comparables_uses_heuristics_without_model(self, subject, simple_model):
        comps = [
            make_record(id="a", sqft=2200.0, price=450000.0, month_index=SUBJECT_MONTH),
            make_record(id="b", sqft=1900.0, price=390000.0, month_index=SUBJECT_MONTH - 2),
        ]

        heuristic = adjust_comparables(comps, subject)
        hedonic = adjust_comparables(comps, subject, simple_model)

        assert [c.id for c in heuristic] == ["a", "b"]
        assert heuristic[0].price_adj == pytest.approx(adjust_comp_price_heuristic(comps[0], subject).price_adj)
        assert hedonic[1].price_adj == pytest.approx(adjust_comp_price(comps[1], subject, simple_model).price_adj)


# =============================================================================
# Diagnostics Tests
# =============================================================================

class TestValidateAdjustments:
    """Tests for adjustment diagnostics."""

    def test_small_adjustments_valid(self):
        result = validate_adjustments([adjusted_comp(total=5.0), adjusted_comp("c2", total=-8.0)])

        assert result.valid is True
        assert result.warnings == []
        assert result.large_adjustments == []

    def test_large_adjustment_invalid(self):
        big = adjusted_comp("big", total=30.0)
        result = validate_adjustments([adjusted_comp(total=2.0), big])

        assert result.valid is False
        assert result.large_adjustments == [big]
        assert "Large adjustment on big: 30.0%" in result.warnings

    def test_custom_limit(self):
        assert validate_adjustments([adjusted_comp(total=30.0)], max_adjustment_pct=40.0).valid

    def test_non_positive_price_invalid(self):
        result = validate_adjustments([adjusted_comp("neg", price_adj=-1200.0, ppsf_adj=-0.6)])

        assert result.valid is False
        assert any("-$1,200" in warning for warning in result.warnings)

    def test_time_adjustment_warns_only(self):
        result = validate_adjustments([adjusted_comp("old", total=12.0, time=11.0)])

        assert result.valid is True
        assert any("Large time adjustment on old" in warning for warning in result.warnings)

    def test_extreme_ppsf_warns_only(self):
        result = validate_adjustments([adjusted_comp("cheap", ppsf_adj=40.0)])

        assert result.valid is True
        assert any("$40/sqft" in warning for warning in result.warnings)


class TestAdjustmentStats:
    """Tests for adjustment statistics."""

    def test_absolute_values(self):
        result = adjustment_stats([
            adjusted_comp("a", total=5.0, time=1.0),
            adjusted_comp("b", total=-10.0, time=-2.0),
        ])

        assert result.avg_total_adj_pct == pytest.approx(7.5)
        assert result.avg_time_adj_pct == pytest.approx(1.5)
        assert result.max_adj_pct == pytest.approx(10.0)
        assert result.min_adj_pct == pytest.approx(5.0)
        assert result.std_adj_pct == pytest.approx(2.5)

    def test_empty(self):
        result = adjustment_stats([])
        assert result.avg_total_adj_pct == 0.0
        assert result.max_adj_pct == 0.0
