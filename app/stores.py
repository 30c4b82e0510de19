"""Snapshot persistence for form values: in-memory and file-backed."""

from __future__ import annotations

import copy
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from dealform.canonical_json import CanonicalJsonTypeError, canonical_dumps


logger = logging.getLogger("dealform.stores")

ENVELOPE_VERSION = "1.0"
MAX_BACKUPS = 5


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_envelope(values: dict) -> dict:
    return {"data": copy.deepcopy(values), "timestamp": _now(), "version": ENVELOPE_VERSION}


def validate_envelope(envelope: Any) -> bool:
    return (
        isinstance(envelope, dict)
        and isinstance(envelope.get("data"), dict)
        and isinstance(envelope.get("timestamp"), str)
        and isinstance(envelope.get("version"), str)
    )


class MemorySnapshotStore:
    """Current snapshot plus a rolling list of backups, newest first."""

    def __init__(self, max_backups: int = MAX_BACKUPS) -> None:
        self.max_backups = max_backups
        self._current: dict | None = None
        self._backups: List[dict] = []

    def _read_current(self) -> dict | None:
        return copy.deepcopy(self._current)

    def _write_current(self, envelope: dict | None) -> None:
        self._current = copy.deepcopy(envelope)

    def _read_backups(self) -> list[dict]:
        return copy.deepcopy(self._backups)

    def _write_backups(self, backups: list[dict]) -> None:
        self._backups = copy.deepcopy(backups)

    def save(self, values: dict) -> bool:
        envelope = make_envelope(values)
        try:
            canonical_dumps(envelope)
            self._write_current(envelope)
            self._push_backup(envelope)
        except (CanonicalJsonTypeError, ValueError, OSError) as exc:
            logger.warning("snapshot_save_failed error=%s", exc)
            return False
        logger.info("snapshot_saved fields=%s", len(values))
        return True

    def load(self) -> dict | None:
        try:
            envelope = self._read_current()
        except (OSError, ValueError) as exc:
            logger.warning("snapshot_load_failed error=%s", exc)
            return None
        if envelope is None:
            return None
        if not validate_envelope(envelope):
            logger.warning("snapshot_envelope_invalid")
            return None
        return envelope["data"]

    def clear(self) -> bool:
        try:
            self._write_current(None)
        except OSError as exc:
            logger.warning("snapshot_clear_failed error=%s", exc)
            return False
        return True

    def _push_backup(self, envelope: dict) -> None:
        backups = self._read_backups()
        backups.insert(
            0,
            {
                "id": str(uuid.uuid4()),
                "name": f"자동백업_{envelope['timestamp']}",
                **envelope,
            },
        )
        self._write_backups(backups[: self.max_backups])

    def list_backups(self) -> list[dict]:
        return [
            {"id": item["id"], "name": item["name"], "timestamp": item["timestamp"]}
            for item in self._read_backups()
        ]

    def restore_backup(self, backup_id: str) -> dict | None:
        for item in self._read_backups():
            if item.get("id") == backup_id and validate_envelope(item):
                return copy.deepcopy(item["data"])
        return None


class FileSnapshotStore(MemorySnapshotStore):
    def __init__(self, directory: str | Path, max_backups: int = MAX_BACKUPS) -> None:
        super().__init__(max_backups=max_backups)
        self.directory = Path(directory)
        self._current_path = self.directory / "snapshot.json"
        self._backups_path = self.directory / "backups.json"

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("snapshot_file_corrupt path=%s error=%s", path, exc.msg)
            return None

    def _write_json(self, path: Path, data: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(canonical_dumps(data, indent=2), encoding="utf-8")
        tmp.replace(path)

    def _read_current(self) -> dict | None:
        return self._read_json(self._current_path)

    def _write_current(self, envelope: dict | None) -> None:
        if envelope is None:
            if self._current_path.exists():
                self._current_path.unlink()
            return
        self._write_json(self._current_path, envelope)

    def _read_backups(self) -> list[dict]:
        data = self._read_json(self._backups_path)
        return data if isinstance(data, list) else []

    def _write_backups(self, backups: list[dict]) -> None:
        self._write_json(self._backups_path, backups)
