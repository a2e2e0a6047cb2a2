"""Tests for length/weight conversion to marketplace units."""

import pytest

from units import LENGTH_FACTORS, to_grams, to_millimeters


class TestToMillimeters:
    def test_exact_constants(self):
        assert to_millimeters(1, "in") == 25
        assert to_millimeters(1, "m") == 1000
        assert to_millimeters(1, "yd") == 914
        assert to_millimeters("12.5", "cm") == 125
        assert to_millimeters("7", "mm") == 7

    @pytest.mark.parametrize("value", [0, "0", "", None, "0.0", "abc"])
    def test_unset_values_convert_to_empty(self, value):
        assert to_millimeters(value, "cm") == ""

    def test_rounds_half_away_from_zero(self):
        assert to_millimeters("2.5", "mm") == 3
        assert to_millimeters("3.5", "mm") == 4
        assert to_millimeters("-2.5", "mm") == -3
        assert to_millimeters("0.1", "in") == 3  # 2.54

    def test_unknown_unit_is_centimetres(self):
        assert to_millimeters(2, "furlong") == 20
        assert to_millimeters(2, None) == 20

    def test_decimal_comma_is_accepted(self):
        assert to_millimeters("12,5", "cm") == 125

    @pytest.mark.parametrize("unit", sorted(LENGTH_FACTORS))
    def test_monotonic_in_value(self, unit):
        values = [0.1, 0.5, 1, 2.75, 10, 100, 1000]
        converted = [to_millimeters(v, unit) for v in values]
        assert converted == sorted(converted)


class TestToGrams:
    def test_exact_constants(self):
        assert to_grams("1.5", "kg") == 1500
        assert to_grams(250, "g") == 250
        assert to_grams(1, "lbs") == 454
        assert to_grams(1, "oz") == 28

    def test_unknown_unit_is_kilograms(self):
        assert to_grams(2, "stone") == 2000

    def test_zero_is_empty(self):
        assert to_grams(0, "g") == ""
        assert to_grams("", "kg") == ""
