"""Form-level state: dirtiness, validity and completion rate."""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from dealform.numbers import is_blank

from event_bus import Event, EventBus, Topic
from field_store import FieldStore
from scheduler import Scheduler


logger = logging.getLogger("dealform.state")

STATE_SLOT = "form_state"
DEFAULT_VISIBLE_CACHE_TTL_S = 0.1


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@dataclass
class FormState:
    is_dirty: bool = False
    is_valid: bool = True
    last_modified: str | None = None
    completion_rate: float = 0.0
    field_states: Dict[str, dict] = field(default_factory=dict)
    validation_errors: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return copy.deepcopy(asdict(self))


class FormStateTracker:
    """Aggregates per-field results into one ``FormState``.

    Recomputation is deferred to the next frame and coalesced: triggers that
    arrive while a recompute is pending are dropped. Each recompute ends with
    exactly one ``form.state_changed`` broadcast.
    """

    def __init__(
        self,
        store: FieldStore,
        scheduler: Scheduler,
        bus: EventBus | None = None,
        cache_ttl_s: float = DEFAULT_VISIBLE_CACHE_TTL_S,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._bus = bus
        self._cache_ttl_s = cache_ttl_s
        self._visible_cache: List[str] | None = None
        self._visible_cached_at = 0.0
        self._error_map: Dict[str, List[str]] = {}
        self._field_modified: Dict[str, str] = {}
        self.state = FormState()
        self.broadcast_count = 0
        if bus is not None:
            bus.subscribe(Topic.VISIBILITY_CHANGED, self._on_visibility_changed)
            bus.subscribe(Topic.VALIDATION_COMPLETED, self._on_validation_completed)

    def visible_fields(self) -> list[str]:
        now = self._scheduler.now()
        if self._visible_cache is not None and now - self._visible_cached_at < self._cache_ttl_s:
            return list(self._visible_cache)
        self._visible_cache = self._store.visible_keys()
        self._visible_cached_at = now
        return list(self._visible_cache)

    def invalidate_visible_cache(self) -> None:
        self._visible_cache = None

    def completion_rate(self) -> float:
        visible = self.visible_fields()
        if not visible:
            return 0.0
        filled = sum(1 for key in visible if not is_blank(self._store.get(key)))
        return filled / len(visible) * 100

    def is_valid(self) -> bool:
        return not self._visible_errors()

    def _visible_errors(self) -> Dict[str, List[str]]:
        visible = set(self.visible_fields())
        return {key: list(errors) for key, errors in self._error_map.items() if errors and key in visible}

    def mark_edit(self, key: str, field_result: dict) -> None:
        now = _now()
        self.state.is_dirty = True
        self.state.last_modified = now
        self._field_modified[key] = now
        if field_result.get("is_valid", True):
            self._error_map.pop(key, None)
        else:
            self._error_map[key] = list(field_result.get("errors") or [])

    def mark_clean(self) -> None:
        self.state.is_dirty = False

    def set_validation_errors(self, error_map: Dict[str, List[str]]) -> None:
        self._error_map = {key: list(errors) for key, errors in error_map.items() if errors}

    def request_update(self) -> bool:
        return self._scheduler.request_frame(STATE_SLOT, self.recompute)

    def recompute(self) -> FormState:
        self._scheduler.cancel(STATE_SLOT)
        values = self._store.get_all_values()
        errors = self._visible_errors()
        field_states: Dict[str, dict] = {}
        for key, value in values.items():
            field_errors = self._error_map.get(key, [])
            field_states[key] = {
                "value": value,
                "is_valid": not field_errors,
                "errors": list(field_errors),
                "last_modified": self._field_modified.get(key),
            }
        self.state.completion_rate = self.completion_rate()
        self.state.field_states = field_states
        self.state.validation_errors = errors
        self.state.is_valid = not errors
        self._broadcast()
        return self.state

    def reset(self) -> None:
        self._scheduler.cancel(STATE_SLOT)
        self._error_map = {}
        self._field_modified = {}
        self.invalidate_visible_cache()
        self.state = FormState()

    def _broadcast(self) -> None:
        self.broadcast_count += 1
        logger.debug(
            "state_changed completion=%.2f valid=%s dirty=%s",
            self.state.completion_rate,
            self.state.is_valid,
            self.state.is_dirty,
        )
        if self._bus is not None:
            self._bus.publish(Topic.STATE_CHANGED, self.state.to_dict())

    def _on_visibility_changed(self, event: Event) -> None:
        self.invalidate_visible_cache()

    def _on_validation_completed(self, event: Event) -> None:
        payload: Dict[str, Any] = event["payload"]
        self.set_validation_errors(payload.get("error_map") or {})
        self.request_update()
