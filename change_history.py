"""Bounded append-only change log kept for diagnostics."""

from __future__ import annotations

import copy
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict

DEFAULT_MAX_RECORDS = 50

KIND_EDIT = "edit"
KIND_LOAD = "load"
KIND_CLEAR = "clear"
KIND_SAVE = "save"
KIND_DOCUMENT = "document_generation"

ChangeRecord = Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ChangeHistory:
    """Ring buffer of change records, oldest dropped first. Never replayed."""

    def __init__(self, session_id: str, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        if max_records < 1:
            raise ValueError("max_records must be positive")
        self.session_id = session_id
        self._records: Deque[ChangeRecord] = deque(maxlen=max_records)

    @property
    def max_records(self) -> int:
        return self._records.maxlen or 0

    def append(
        self,
        field: str | None,
        value: Any,
        kind: str = KIND_EDIT,
        success: bool = True,
        details: dict | None = None,
    ) -> ChangeRecord:
        record = {
            "field": field,
            "value": copy.deepcopy(value),
            "timestamp": _now(),
            "session_id": self.session_id,
            "kind": kind,
            "success": bool(success),
            "details": copy.deepcopy(details) if details else {},
        }
        self._records.append(record)
        return copy.deepcopy(record)

    def records(self) -> list[ChangeRecord]:
        return [copy.deepcopy(r) for r in self._records]

    def by_field(self, field: str) -> list[ChangeRecord]:
        return [copy.deepcopy(r) for r in self._records if r["field"] == field]

    def by_success(self, success: bool = True) -> list[ChangeRecord]:
        return [copy.deepcopy(r) for r in self._records if r["success"] == success]

    def last_by_kind(self, kind: str) -> ChangeRecord | None:
        for record in reversed(self._records):
            if record["kind"] == kind:
                return copy.deepcopy(record)
        return None

    def statistics(self) -> dict:
        by_kind: Dict[str, int] = {}
        successful = 0
        for record in self._records:
            by_kind[record["kind"]] = by_kind.get(record["kind"], 0) + 1
            if record["success"]:
                successful += 1
        return {
            "total": len(self._records),
            "successful": successful,
            "failed": len(self._records) - successful,
            "by_kind": by_kind,
        }

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
