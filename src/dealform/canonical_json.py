"""Deterministic JSON for snapshots, event payloads and saved envelopes."""

from __future__ import annotations

import json
import math
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a value cannot be represented as canonical JSON."""


def _check(obj: Any, path: str = "$") -> None:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            _check(value, f"{path}.{key}")
        return
    if isinstance(obj, (list, tuple)):
        for idx, item in enumerate(obj):
            _check(item, f"{path}[{idx}]")
        return
    if obj is None or isinstance(obj, (str, int, bool)):
        return
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return
    raise CanonicalJsonTypeError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def canonical_dumps(obj: Any, indent: int | None = None) -> str:
    """Serialize to deterministic JSON.

    Keys are sorted recursively, list order is kept, non-ASCII text (field
    keys are Korean) is written as-is and NaN/Infinity are rejected. With
    ``indent`` unset the output carries no insignificant whitespace.
    """
    _check(obj)
    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        obj,
        sort_keys=True,
        ensure_ascii=False,
        separators=separators,
        indent=indent,
        allow_nan=False,
    )
