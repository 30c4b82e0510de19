"""Field store: registered field schema, current values and display state."""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List

from dealform.numbers import is_blank

from event_bus import EventBus, Topic


logger = logging.getLogger("dealform.fields")

NUMERIC_TYPES = {"number", "currency", "percentage", "integer"}
FIELD_TYPES = NUMERIC_TYPES | {"text", "select", "textarea", "date", "email", "tel"}

ORIGIN_USER = "user"
ORIGIN_CALCULATION = "calculation"
ORIGIN_LOAD = "load"
ORIGIN_CLEAR = "clear"


@dataclass
class FieldStoreError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class UnknownFieldError(FieldStoreError):
    def __init__(self, key: str) -> None:
        super().__init__("FIELD_UNKNOWN", f"Unknown field: {key}", key)


class DuplicateFieldError(FieldStoreError):
    def __init__(self, key: str) -> None:
        super().__init__("FIELD_DUPLICATE", f"Field already registered: {key}", key)


@dataclass
class FieldSpec:
    key: str
    type: str = "text"
    label: str | None = None
    section: str | None = None
    required: bool = False
    default: Any = ""
    min: float | None = None
    max: float | None = None
    options: List[Any] = field(default_factory=list)
    unit: str | None = None
    pattern: str | None = None
    placeholder: str | None = None
    description: str | None = None
    calculated: bool = False
    formula: str | None = None
    conditional: bool = False
    condition_field: str | None = None
    condition_value: Any = None
    condition_operator: str | None = None

    @property
    def readonly(self) -> bool:
        return self.calculated

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    @classmethod
    def from_dict(cls, key: str, data: dict, section: str | None = None) -> "FieldSpec":
        ftype = data.get("type") or "text"
        if ftype not in FIELD_TYPES:
            logger.warning("field_type_unknown key=%s type=%s", key, ftype)
            ftype = "text"
        options = []
        for opt in data.get("options") or []:
            if isinstance(opt, dict) and "value" in opt:
                options.append(opt["value"])
            else:
                options.append(opt)
        return cls(
            key=key,
            type=ftype,
            label=data.get("label") or key,
            section=section,
            required=bool(data.get("required")),
            default=data.get("default", ""),
            min=data.get("min"),
            max=data.get("max"),
            options=options,
            unit=data.get("unit"),
            pattern=data.get("pattern"),
            placeholder=data.get("placeholder"),
            description=data.get("description"),
            calculated=bool(data.get("calculated")),
            formula=data.get("formula"),
            conditional=bool(data.get("conditional")),
            condition_field=data.get("condition_field"),
            condition_value=data.get("condition_value"),
            condition_operator=data.get("condition_operator"),
        )


class FieldStore:
    """Single owner of field values.

    ``set`` only writes and announces the change on the bus; recalculation,
    visibility and validation happen in whoever listens for it.
    """

    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus
        self._specs: Dict[str, FieldSpec] = {}
        self._values: Dict[str, Any] = {}
        self._visible: Dict[str, bool] = {}
        self._labels: Dict[str, str] = {}

    def register(self, key: str, schema: FieldSpec | dict) -> FieldSpec:
        if key in self._specs:
            raise DuplicateFieldError(key)
        spec = schema if isinstance(schema, FieldSpec) else FieldSpec.from_dict(key, schema)
        if spec.key != key:
            spec = replace(spec, key=key)
        self._specs[key] = spec
        self._values[key] = self.default_value(key)
        self._visible[key] = True
        self._labels[key] = spec.label or key
        return spec

    def has(self, key: str) -> bool:
        return key in self._specs

    def keys(self) -> list[str]:
        return list(self._specs.keys())

    def spec(self, key: str) -> FieldSpec:
        spec = self._specs.get(key)
        if spec is None:
            raise UnknownFieldError(key)
        return spec

    def specs(self) -> list[FieldSpec]:
        return list(self._specs.values())

    def get(self, key: str) -> Any:
        if key not in self._values:
            raise UnknownFieldError(key)
        return self._values[key]

    def set(self, key: str, value: Any, origin: str = ORIGIN_USER) -> None:
        if key not in self._specs:
            raise UnknownFieldError(key)
        if value is None:
            value = ""
        elif isinstance(value, float) and not math.isfinite(value):
            # stored as text; numeric validation rejects it
            value = str(value)
        self._values[key] = value
        if self._bus is not None:
            self._bus.publish(Topic.FIELD_CHANGED, {"field": key, "value": self._values[key], "origin": origin})

    def get_all_values(self) -> dict:
        """Ordered snapshot of every registered field, hidden ones included."""
        return {key: copy.deepcopy(self._values[key]) for key in self._specs}

    def default_value(self, key: str) -> Any:
        default = self.spec(key).default
        return "" if default is None else copy.deepcopy(default)

    def has_input(self) -> bool:
        """True when some field holds a non-blank value other than its declared default."""
        return any(
            not is_blank(value) and value != self._specs[key].default for key, value in self._values.items()
        )

    def is_visible(self, key: str) -> bool:
        if key not in self._visible:
            raise UnknownFieldError(key)
        return self._visible[key]

    def set_visible(self, key: str, visible: bool) -> bool:
        """Record visibility; returns True when it changed. Values are never touched."""
        if key not in self._visible:
            raise UnknownFieldError(key)
        if self._visible[key] == visible:
            return False
        self._visible[key] = visible
        return True

    def visible_keys(self) -> list[str]:
        return [key for key in self._specs if self._visible[key]]

    def label(self, key: str) -> str:
        if key not in self._labels:
            raise UnknownFieldError(key)
        return self._labels[key]

    def set_label(self, key: str, label: str) -> bool:
        if key not in self._labels:
            raise UnknownFieldError(key)
        if self._labels[key] == label:
            return False
        self._labels[key] = label
        return True
