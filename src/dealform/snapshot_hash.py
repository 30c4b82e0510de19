"""Snapshot fingerprinting."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps


def snapshot_hash(values: Any) -> str:
    """Return the canonical SHA-256 fingerprint for a field-value snapshot."""
    data = canonical_dumps(values).encode("utf-8")
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"
