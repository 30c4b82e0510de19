"""Field and whole-form validation.

Two tiers share the same per-field checks:

* ``validate_field`` is synchronous and cheap (required + number format) and
  runs on every edit for inline feedback.
* ``request_validation`` schedules a whole-form pass on a trailing debounce;
  a newer edit replaces the pending pass instead of queueing another one.

Invalid data is reported in the returned results, never raised.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from dealform.numbers import format_number, is_blank, parse_number

from calc_engine import CalculationEngine
from event_bus import EventBus, Topic
from field_store import FieldSpec, FieldStore
from scheduler import Scheduler


logger = logging.getLogger("dealform.validation")

VALIDATION_SLOT = "validation"
DEFAULT_DEBOUNCE_S = 0.5

PATTERNS: Dict[str, tuple] = {
    "korean_english": (r"^[가-힣a-zA-Z\s]+$", "한글과 영문만 입력 가능합니다."),
    "number_with_comma": (r"^[0-9,]+$", "숫자와 쉼표만 입력 가능합니다."),
    "email": (r"^[^\s@]+@[^\s@]+\.[^\s@]+$", "올바른 이메일 형식이 아닙니다."),
}

_UNSET = object()


def _required_message(spec: FieldSpec) -> str:
    return f"{spec.label or spec.key}은(는) 필수 입력 항목입니다."


def _range_message(spec: FieldSpec) -> str:
    if spec.type == "percentage":
        return "0% 이상 100% 이하의 값을 입력해주세요."
    low = format_number(spec.min) if spec.min is not None else None
    high = format_number(spec.max) if spec.max is not None else None
    unit = spec.unit or ""
    if low is not None and high is not None:
        return f"{low}{unit} 이상 {high}{unit} 이하여야 합니다."
    if low is not None:
        return f"{low}{unit} 이상이어야 합니다."
    return f"{high}{unit} 이하여야 합니다."


def _pattern_for(spec: FieldSpec) -> tuple | None:
    if not spec.pattern:
        return None
    if spec.pattern in PATTERNS:
        return PATTERNS[spec.pattern]
    return (spec.pattern, "입력 형식이 올바르지 않습니다.")


def _result() -> dict:
    return {"is_valid": True, "errors": [], "warnings": []}


class ValidationEngine:
    def __init__(
        self,
        store: FieldStore,
        scheduler: Scheduler | None = None,
        bus: EventBus | None = None,
        calc: CalculationEngine | None = None,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._bus = bus
        self._calc = calc
        self._debounce_s = debounce_s
        self.last_result: dict | None = None
        self.pass_count = 0

    def validate_field(self, key: str, value: Any = _UNSET) -> dict:
        """Immediate tier: required and numeric-format checks for one field."""
        spec = self._store.spec(key)
        if value is _UNSET:
            value = self._store.get(key)
        result = _result()
        if is_blank(value):
            if spec.required:
                result["is_valid"] = False
                result["errors"].append(_required_message(spec))
            return result
        if spec.is_numeric and parse_number(value) is None:
            result["is_valid"] = False
            result["errors"].append("숫자만 입력 가능합니다.")
        return result

    def validate_field_full(self, key: str, values: dict) -> dict:
        result = self.validate_field(key, values.get(key))
        value = values.get(key)
        if not result["is_valid"] or is_blank(value):
            return result
        spec = self._store.spec(key)
        self._check_range(spec, value, result)
        self._check_pattern(spec, value, result)
        self._check_business_logic(spec, value, values, result)
        return result

    def _check_range(self, spec: FieldSpec, value: Any, result: dict) -> None:
        if not spec.is_numeric or (spec.min is None and spec.max is None):
            return
        number = parse_number(value)
        if number is None:
            return
        if (spec.min is not None and number < spec.min) or (spec.max is not None and number > spec.max):
            result["is_valid"] = False
            result["errors"].append(_range_message(spec))

    def _check_pattern(self, spec: FieldSpec, value: Any, result: dict) -> None:
        pattern = _pattern_for(spec)
        if pattern is None or not isinstance(value, str):
            return
        regex, message = pattern
        try:
            matched = re.search(regex, value) is not None
        except re.error:
            logger.warning("validation_bad_pattern field=%s pattern=%s", spec.key, regex)
            return
        if not matched:
            result["is_valid"] = False
            result["errors"].append(message)

    def _check_business_logic(self, spec: FieldSpec, value: Any, values: dict, result: dict) -> None:
        if self._calc is None:
            return
        rule = self._calc.rule_for(spec.key)
        if rule is None or not self._calc.can_calculate(rule.rule_id, values):
            return
        expected = self._calc.calculate(rule.rule_id, values)
        if expected is None:
            return
        check = self._calc.check_calculation(rule.rule_id, expected, value)
        if not check["is_accurate"]:
            label = self._store.label(spec.key)
            result["warnings"].append(f"{label}이(가) 계산값과 일치하지 않습니다.")

    def validate_form(self, include_hidden: bool = False) -> dict:
        """Whole-form pass over the current snapshot.

        Hidden fields are left out unless ``include_hidden`` is set.
        """
        values = self._store.get_all_values()
        keys = self._store.keys() if include_hidden else self._store.visible_keys()
        field_results: Dict[str, dict] = {}
        errors: List[str] = []
        error_map: Dict[str, List[str]] = {}
        valid = invalid = warnings = 0
        for key in keys:
            result = self.validate_field_full(key, values)
            field_results[key] = result
            warnings += len(result["warnings"])
            if result["is_valid"]:
                valid += 1
                continue
            invalid += 1
            error_map[key] = list(result["errors"])
            errors.extend(f"{key}: {message}" for message in result["errors"])
        return {
            "is_valid": invalid == 0,
            "total_fields": len(keys),
            "valid_fields": valid,
            "invalid_fields": invalid,
            "warnings": warnings,
            "errors": errors,
            "error_map": error_map,
            "field_results": field_results,
        }

    def request_validation(self) -> None:
        if self._scheduler is None:
            self._run_pass()
            return
        self._scheduler.debounce(VALIDATION_SLOT, self._debounce_s, self._run_pass)

    def is_pending(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_pending(VALIDATION_SLOT)

    def flush(self) -> dict:
        """Run the pending pass now (or a fresh one if nothing is pending)."""
        if self._scheduler is None or not self._scheduler.flush(VALIDATION_SLOT):
            self._run_pass()
        return self.last_result or {}

    def cancel(self) -> bool:
        return self._scheduler is not None and self._scheduler.cancel(VALIDATION_SLOT)

    def _run_pass(self) -> None:
        result = self.validate_form()
        self.pass_count += 1
        self.last_result = result
        logger.info(
            "validation_pass count=%s valid=%s invalid_fields=%s warnings=%s",
            self.pass_count,
            result["is_valid"],
            result["invalid_fields"],
            result["warnings"],
        )
        if self._bus is not None:
            self._bus.publish(Topic.VALIDATION_COMPLETED, result)
