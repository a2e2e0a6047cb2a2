#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
units.py
================================================================================
Physical unit conversion for the Nalda feed.

The marketplace expects lengths in whole millimetres and weights in whole
grams. Shops store them in whatever unit the store is configured with, so
every dimension/weight passes through here before it lands in a CSV row.

Conventions:
    • An empty, zero or unparseable value converts to "" (unset), never 0.
    • Results are rounded half away from zero (2.5 -> 3, -2.5 -> -3).
    • Unknown length units are treated as cm, unknown weight units as kg.
================================================================================
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

# Factors to the target unit (mm / g).
LENGTH_FACTORS = {
    "m": Decimal("1000"),
    "cm": Decimal("10"),
    "mm": Decimal("1"),
    "in": Decimal("25.4"),
    "yd": Decimal("914.4"),
}
DEFAULT_LENGTH_UNIT = "cm"

WEIGHT_FACTORS = {
    "kg": Decimal("1000"),
    "g": Decimal("1"),
    "lbs": Decimal("453.592"),
    "oz": Decimal("28.3495"),
}
DEFAULT_WEIGHT_UNIT = "kg"

Converted = Union[int, str]


def _to_decimal(value: object) -> Optional[Decimal]:
    """Parse a stored measurement; None for empty/zero/garbage input."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite() or number == 0:
        return None
    return number


def _convert(value: object, factor: Decimal) -> Converted:
    number = _to_decimal(value)
    if number is None:
        return ""
    return int((number * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_millimeters(value: object, unit: Optional[str]) -> Converted:
    """Convert a length in `unit` (m, cm, mm, in, yd) to whole millimetres."""
    key = (unit or "").strip().lower()
    return _convert(value, LENGTH_FACTORS.get(key, LENGTH_FACTORS[DEFAULT_LENGTH_UNIT]))


def to_grams(value: object, unit: Optional[str]) -> Converted:
    """Convert a weight in `unit` (kg, g, lbs, oz) to whole grams."""
    key = (unit or "").strip().lower()
    return _convert(value, WEIGHT_FACTORS.get(key, WEIGHT_FACTORS[DEFAULT_WEIGHT_UNIT]))
