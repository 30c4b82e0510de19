"""Field view interface and the headless view used by hosts and tests."""

from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, Protocol

from event_bus import Event, Topic
from field_store import ORIGIN_USER, FieldSpec
from form_controller import FormController


OnChange = Callable[[str, Any], None]


class FieldView(Protocol):
    def create_field(self, spec: FieldSpec, on_change: OnChange) -> str: ...

    def get_value(self, handle: str) -> Any: ...

    def set_value(self, handle: str, value: Any) -> None: ...

    def set_visible(self, handle: str, visible: bool) -> None: ...

    def set_label(self, handle: str, label: str) -> None: ...


class MemoryFieldView:
    """Keeps widget state in dicts; ``type_value`` plays the part of a keystroke."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.values: Dict[str, Any] = {}
        self.visible: Dict[str, bool] = {}
        self.labels: Dict[str, str] = {}
        self.keys: Dict[str, str] = {}
        self._callbacks: Dict[str, OnChange] = {}

    def create_field(self, spec: FieldSpec, on_change: OnChange) -> str:
        handle = f"field-{next(self._ids)}"
        self.keys[handle] = spec.key
        self.values[handle] = spec.default if spec.default is not None else ""
        self.visible[handle] = True
        self.labels[handle] = spec.label or spec.key
        self._callbacks[handle] = on_change
        return handle

    def get_value(self, handle: str) -> Any:
        return self.values[handle]

    def set_value(self, handle: str, value: Any) -> None:
        self.values[handle] = value

    def set_visible(self, handle: str, visible: bool) -> None:
        self.visible[handle] = visible

    def set_label(self, handle: str, label: str) -> None:
        self.labels[handle] = label

    def type_value(self, handle: str, value: Any) -> None:
        self.values[handle] = value
        self._callbacks[handle](handle, value)

    def handle_for(self, key: str) -> str:
        for handle, field_key in self.keys.items():
            if field_key == key:
                return handle
        raise KeyError(key)


class ViewBinding:
    def __init__(self, controller: FormController, view: FieldView) -> None:
        self.controller = controller
        self.view = view
        self.handles: Dict[str, str] = {}
        self._keys: Dict[str, str] = {}
        store = controller.ctx.store
        for spec in store.specs():
            handle = view.create_field(spec, self._on_view_change)
            self.handles[spec.key] = handle
            self._keys[handle] = spec.key
            view.set_value(handle, store.get(spec.key))
            view.set_visible(handle, store.is_visible(spec.key))
            view.set_label(handle, store.label(spec.key))
        bus = controller.ctx.bus
        bus.subscribe(Topic.FIELD_CHANGED, self._on_field_changed)
        bus.subscribe(Topic.VISIBILITY_CHANGED, self._on_visibility_changed)
        bus.subscribe(Topic.LABEL_CHANGED, self._on_label_changed)

    def _on_view_change(self, handle: str, value: Any) -> None:
        self.controller.on_change(self._keys[handle], value)

    def _on_field_changed(self, event: Event) -> None:
        payload = event["payload"]
        if payload.get("origin") == ORIGIN_USER:
            return
        handle = self.handles.get(payload["field"])
        if handle is not None:
            self.view.set_value(handle, payload.get("value"))

    def _on_visibility_changed(self, event: Event) -> None:
        for key, visible in event["payload"].get("changes", {}).items():
            if key in self.handles:
                self.view.set_visible(self.handles[key], visible)

    def _on_label_changed(self, event: Event) -> None:
        for key, label in event["payload"].get("changes", {}).items():
            if key in self.handles:
                self.view.set_label(self.handles[key], label)


def bind_view(controller: FormController, view: FieldView) -> ViewBinding:
    return ViewBinding(controller, view)
