"""In-process typed event bus for the form edit cycle."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

from dealform.canonical_json import canonical_dumps


logger = logging.getLogger("dealform.events")

Event = Dict[str, Any]
Handler = Callable[[Event], None]


class Topic(str, Enum):
    FIELD_CHANGED = "field.changed"
    VISIBILITY_CHANGED = "field.visibility_changed"
    LABEL_CHANGED = "field.label_changed"
    STATE_CHANGED = "form.state_changed"
    VALIDATION_COMPLETED = "form.validation_completed"
    UNIT_CHANGED = "unit.changed"
    NOTICE = "notice"


_TOPIC_NAMES = {topic.value for topic in Topic}


@dataclass
class EventError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class EventValidationError(EventError):
    code: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _raise(code: str, message: str, path: str | None = None) -> None:
    raise EventValidationError(code=code, message=message, path=path)


def _topic_name(topic: Topic | str) -> str:
    name = topic.value if isinstance(topic, Topic) else topic
    if name not in _TOPIC_NAMES:
        _raise("EVENT_NAME_INVALID", f"unknown topic: {name}", "name")
    return name


def validate_event(event: Any) -> None:
    if not isinstance(event, dict):
        _raise("EVENT_INVALID", "event must be object")
    name = event.get("name")
    if not isinstance(name, str) or name not in _TOPIC_NAMES:
        _raise("EVENT_NAME_INVALID", "name must be a known topic", "name")

    payload = event.get("payload")
    if not isinstance(payload, dict):
        _raise("PAYLOAD_INVALID", "payload must be an object", "payload")
    try:
        canonical_dumps(payload)
    except (TypeError, ValueError) as exc:
        _raise("PAYLOAD_INVALID", str(exc), "payload")

    meta = event.get("meta")
    if not isinstance(meta, dict):
        _raise("META_INVALID", "meta must be object", "meta")
    if not isinstance(meta.get("event_id"), str):
        _raise("META_EVENT_ID_INVALID", "event_id must be string", "meta.event_id")
    occurred_at = meta.get("occurred_at")
    if not isinstance(occurred_at, str) or not occurred_at.endswith("Z"):
        _raise("META_OCCURRED_AT_INVALID", "occurred_at must be ISO8601 ending in 'Z'", "meta.occurred_at")
    session_id = meta.get("session_id")
    if session_id is not None and not isinstance(session_id, str):
        _raise("META_SESSION_ID_INVALID", "session_id must be string or null", "meta.session_id")
    if meta.get("schema_version") != "1":
        _raise("META_SCHEMA_VERSION_INVALID", "schema_version must be '1'", "meta.schema_version")


def make_event(topic: Topic | str, payload: dict, session_id: str | None = None) -> Event:
    event = {
        "name": _topic_name(topic),
        "payload": copy.deepcopy(payload),
        "meta": {
            "event_id": str(uuid.uuid4()),
            "occurred_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "session_id": session_id,
            "schema_version": "1",
        },
    }
    validate_event(event)
    return event


class EventBus:
    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id
        self._subs: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: Topic | str, handler: Handler) -> None:
        self._subs.setdefault(_topic_name(topic), []).append(handler)

    def unsubscribe(self, topic: Topic | str, handler: Handler) -> bool:
        handlers = self._subs.get(_topic_name(topic))
        if not handlers:
            return False
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        if not handlers:
            del self._subs[_topic_name(topic)]
        return True

    def publish(self, topic: Topic | str, payload: dict) -> Event:
        event = make_event(topic, payload, self.session_id)
        self.dispatch(event)
        return event

    def dispatch(self, event: dict) -> None:
        validate_event(event)
        # Copy so handlers may unsubscribe while being notified.
        for handler in list(self._subs.get(event["name"], [])):
            try:
                handler(event)
            except Exception:
                logger.exception("event_handler_failed topic=%s", event["name"])
