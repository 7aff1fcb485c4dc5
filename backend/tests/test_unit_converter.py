"""Tests for carton / unit conversion."""

import pytest

from stockcount.services.unit_converter import (
    QuantityDelta,
    normalize,
    normalize_units_per_carton,
    pairwise_delta,
    to_cartons_and_units,
    to_total_units,
)


class TestConversion:
    """Test conversions between cartons + units and total units."""

    def test_to_total_units(self):
        assert to_total_units(2, 5, 12) == 29

    def test_to_cartons_and_units(self):
        assert to_cartons_and_units(29, 12) == (2, 5)
        assert to_cartons_and_units(24, 12) == (2, 0)
        assert to_cartons_and_units(0, 12) == (0, 0)

    def test_missing_packing_factor_counts_one_unit_per_carton(self):
        assert normalize_units_per_carton(None) == 1
        assert normalize_units_per_carton(0) == 1
        assert normalize_units_per_carton(-6) == 1
        assert to_total_units(3, 2, None) == 5
        assert to_cartons_and_units(7, 0) == (7, 0)

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValueError):
            to_total_units(-1, 0, 12)
        with pytest.raises(ValueError):
            to_total_units(0, -1, 12)
        with pytest.raises(ValueError):
            to_cartons_and_units(-1, 12)

    def test_normalize_carries_loose_units(self):
        assert normalize(1, 15, 12) == (2, 3)
        assert normalize(0, 11, 12) == (0, 11)


class TestPairwiseDelta:
    """Signed deltas are computed per component, never by decomposing the difference."""

    def test_crossing_a_carton_boundary(self):
        delta = pairwise_delta(11, 12, 12)
        assert delta == QuantityDelta(cartons=1, units=-11, total_units=1)

    def test_shortage(self):
        delta = pairwise_delta(29, 20, 12)
        # before 2c+5u, after 1c+8u
        assert delta.cartons == -1
        assert delta.units == 3
        assert delta.total_units == -9

    def test_no_change(self):
        delta = pairwise_delta(30, 30, 12)
        assert delta.is_zero
        assert (delta.cartons, delta.units) == (0, 0)

    def test_components_recombine_to_total(self):
        for before, after in [(0, 37), (37, 0), (13, 25), (25, 13)]:
            delta = pairwise_delta(before, after, 12)
            assert delta.cartons * 12 + delta.units == delta.total_units

    def test_recount_within_the_same_carton(self):
        # 2 cartons + 6 units counted again as 1 carton + 20 loose units
        after = to_total_units(1, 20, 12)
        delta = pairwise_delta(30, after, 12)
        assert after == 32
        assert (delta.cartons, delta.units, delta.total_units) == (0, 2, 2)


class TestNormalizationFixedPoint:
    def test_normalized_output_is_stable(self):
        for cartons, units in [(0, 0), (1, 11), (1, 12), (2, 30), (0, 145)]:
            normalized = normalize(cartons, units, 12)
            assert normalize(*normalized, 12) == normalized
            assert normalized == (cartons + units // 12, units % 12)
