"""Number parsing and display formatting for form values."""

from __future__ import annotations

import math
from typing import Any


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def parse_number(value: Any) -> float | None:
    """Parse a raw field value into a float.

    Accepts ints/floats and strings with grouping commas, surrounding
    whitespace and an optional trailing ``%``. Returns None for anything that
    does not parse to a finite number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    text = value.replace(",", "").strip()
    if text.endswith("%"):
        text = text[:-1].strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def format_number(number: float, max_decimals: int = 2) -> str:
    """Group thousands and keep up to ``max_decimals`` fraction digits (ko-KR style)."""
    text = f"{number:,.{max_decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text


def format_integer(number: float) -> str:
    return f"{int(number):,}"


def format_percentage(number: float, decimals: int = 2) -> str:
    return f"{number:.{decimals}f}"
