"""Conditional visibility and label evaluation for form fields."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List

from dealform.numbers import is_blank, parse_number

from event_bus import EventBus, Topic
from field_store import FieldSpec, FieldStore


logger = logging.getLogger("dealform.visibility")

Issue = Dict[str, Any]

_UNSET = object()


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _greater_than(left: Any, right: Any) -> bool:
    lnum, rnum = parse_number(left), parse_number(right)
    return lnum is not None and rnum is not None and lnum > rnum


def _less_than(left: Any, right: Any) -> bool:
    lnum, rnum = parse_number(left), parse_number(right)
    return lnum is not None and rnum is not None and lnum < rnum


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, list):
        return right in left
    if isinstance(left, str) and isinstance(right, str):
        return right in left
    return False


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda left, right: left == right,
    "not_equals": lambda left, right: left != right,
    "greater_than": _greater_than,
    "less_than": _less_than,
    "not_empty": lambda left, right: not is_blank(left),
    "empty": lambda left, right: is_blank(left),
    "contains": _contains,
    "in_list": lambda left, right: left in _as_list(right),
    "not_in_list": lambda left, right: left not in _as_list(right),
}


def eval_operator(operator: str | None, value: Any, comparison: Any) -> bool:
    """Evaluate one condition. Unknown operators show the field."""
    fn = OPERATORS.get(operator or "")
    if fn is None:
        logger.warning("condition_unknown_op op=%s", operator)
        return True
    return fn(value, comparison)


@dataclass(frozen=True)
class ConditionalRule:
    target: str
    condition_field: str | None
    operator: str
    comparison_value: Any = None

    @classmethod
    def from_spec(cls, spec: FieldSpec) -> "ConditionalRule | None":
        if not spec.conditional:
            return None
        return cls(spec.key, spec.condition_field, spec.condition_operator or "equals", spec.condition_value)


@dataclass(frozen=True)
class LabelRule:
    target: str
    condition_field: str
    operator: str
    comparison_value: Any
    label: str


def check_rules(
    rules: Iterable[ConditionalRule],
    label_rules: Iterable[LabelRule],
    known_fields: Iterable[str],
) -> list[Issue]:
    known = set(known_fields)
    issues: List[Issue] = []
    for rule in rules:
        path = f"{rule.target}.condition"
        if rule.operator not in OPERATORS:
            issues.append(_issue("CONDITION_UNKNOWN_OP", f"Unknown operator: {rule.operator}", path))
        if rule.target not in known:
            issues.append(_issue("CONDITION_TARGET_UNKNOWN", f"Unknown target field: {rule.target}", path))
        if rule.condition_field is not None and rule.condition_field not in known:
            issues.append(
                _issue("CONDITION_FIELD_UNKNOWN", f"Unknown condition field: {rule.condition_field}", path)
            )
        if rule.operator in ("in_list", "not_in_list") and not isinstance(rule.comparison_value, (list, tuple)):
            issues.append(_issue("CONDITION_VALUE_NOT_LIST", f"{rule.operator} needs a list", path))
    for rule in label_rules:
        path = f"{rule.target}.label_rules"
        if rule.operator not in OPERATORS:
            issues.append(_issue("CONDITION_UNKNOWN_OP", f"Unknown operator: {rule.operator}", path))
        for key in (rule.target, rule.condition_field):
            if key not in known:
                issues.append(_issue("CONDITION_FIELD_UNKNOWN", f"Unknown field: {key}", path))
    return issues


class VisibilityEvaluator:
    """Shows and hides fields from their conditional rules.

    Hiding only flips the field's visibility in the store; its value stays put
    and is still part of ``FieldStore.get_all_values()``.
    """

    def __init__(
        self,
        store: FieldStore,
        rules: Iterable[ConditionalRule] = (),
        label_rules: Iterable[LabelRule] = (),
        bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._rules = list(rules)
        self._label_rules = list(label_rules)
        self._default_labels = {key: store.label(key) for key in store.keys()}

    @classmethod
    def from_store(
        cls, store: FieldStore, label_rules: Iterable[LabelRule] = (), bus: EventBus | None = None
    ) -> "VisibilityEvaluator":
        rules = [rule for rule in (ConditionalRule.from_spec(spec) for spec in store.specs()) if rule is not None]
        return cls(store, rules, label_rules, bus)

    def rules(self) -> list[ConditionalRule]:
        return list(self._rules)

    def label_rules(self) -> list[LabelRule]:
        return list(self._label_rules)

    def _condition_value(self, condition_field: str, changed_field: str | None, value: Any) -> Any:
        if condition_field == changed_field and value is not _UNSET:
            return value
        return self._store.get(condition_field)

    def _applies(self, condition_field: str | None, changed_field: str | None) -> bool:
        if condition_field is None:
            return False
        if changed_field is None:
            return True
        return condition_field == changed_field

    def evaluate(self, changed_field: str | None = None, value: Any = _UNSET) -> dict:
        """Re-evaluate rules affected by an edit, or every rule when ``changed_field`` is None."""
        visibility: Dict[str, bool] = {}
        labels: Dict[str, str] = {}

        for rule in self._rules:
            condition_field = rule.condition_field or changed_field
            if not self._applies(condition_field, changed_field):
                continue
            if not self._store.has(condition_field) or not self._store.has(rule.target):
                logger.warning(
                    "condition_skipped target=%s reason=undeclared_field condition_field=%s",
                    rule.target,
                    condition_field,
                )
                continue
            current = self._condition_value(condition_field, changed_field, value)
            show = eval_operator(rule.operator, current, rule.comparison_value)
            if self._store.set_visible(rule.target, show):
                visibility[rule.target] = show

        matched: Dict[str, str] = {}
        touched: set = set()
        for rule in self._label_rules:
            if not self._applies(rule.condition_field, changed_field):
                continue
            if not self._store.has(rule.condition_field) or not self._store.has(rule.target):
                logger.warning("label_rule_skipped target=%s reason=undeclared_field", rule.target)
                continue
            touched.add(rule.target)
            current = self._condition_value(rule.condition_field, changed_field, value)
            if rule.target not in matched and eval_operator(rule.operator, current, rule.comparison_value):
                matched[rule.target] = rule.label
        for target in touched:
            label = matched.get(target, self._default_labels.get(target, target))
            if self._store.set_label(target, label):
                labels[target] = label

        if visibility:
            logger.debug("visibility_changed changes=%s", visibility)
            if self._bus is not None:
                self._bus.publish(Topic.VISIBILITY_CHANGED, {"changes": visibility})
        if labels and self._bus is not None:
            self._bus.publish(Topic.LABEL_CHANGED, {"changes": labels})
        return {"visibility": visibility, "labels": labels}
