"""dealform kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .numbers import format_integer, format_number, format_percentage, is_blank, parse_number
from .snapshot_hash import snapshot_hash

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "format_integer",
    "format_number",
    "format_percentage",
    "is_blank",
    "parse_number",
    "snapshot_hash",
]
