"""Dependency-driven auto-calculation of derived investment fields."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping

from dealform.numbers import format_integer, format_number, format_percentage, is_blank, parse_number

from event_bus import Event, EventBus, Topic
from field_store import ORIGIN_CALCULATION, FieldStore


logger = logging.getLogger("dealform.calc")

PRE_MONEY = "투자전가치"
POST_MONEY = "투자후가치"
INVESTMENT_AMOUNT = "투자금액"
PRICE_PER_SHARE = "투자단가"
OWNERSHIP = "지분율"
SHARES_ACQUIRED = "인수주식수"

# 1억원 in 원: amounts are entered in 억원, share prices in 원.
DEFAULT_UNIT_MULTIPLIER = 100_000_000

Snapshot = Mapping[str, Any]
Compute = Callable[[Snapshot], "float | None"]


class RuleId(str, Enum):
    POST_MONEY = "post_money"
    OWNERSHIP = "ownership"
    SHARES_ACQUIRED = "shares_acquired"


@dataclass
class RuleConfigError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


@dataclass(frozen=True)
class CalculationRule:
    rule_id: RuleId
    target: str
    dependencies: tuple
    compute: Compute
    tolerance: float = 0.0

    def __post_init__(self) -> None:
        if self.target in self.dependencies:
            raise RuleConfigError(
                "RULE_SELF_DEPENDENCY",
                f"{self.rule_id.value} reads its own target",
                self.target,
            )


def _num(snapshot: Snapshot, key: str) -> float:
    value = parse_number(snapshot.get(key))
    if value is None:
        raise ValueError(f"{key} is not a number")
    return value


def _post_money(snapshot: Snapshot) -> float:
    return _num(snapshot, PRE_MONEY) + _num(snapshot, INVESTMENT_AMOUNT)


def _ownership(snapshot: Snapshot) -> float:
    return _num(snapshot, INVESTMENT_AMOUNT) / _num(snapshot, POST_MONEY) * 100


def shares_compute(multiplier: float) -> Compute:
    def _shares(snapshot: Snapshot) -> float:
        raw = _num(snapshot, INVESTMENT_AMOUNT) * multiplier / _num(snapshot, PRICE_PER_SHARE)
        if not math.isfinite(raw):
            return raw
        # absorb float noise such as 2899999.9999999995 before flooring
        return float(math.floor(round(raw, 6)))

    return _shares


def default_rules(multiplier: float = DEFAULT_UNIT_MULTIPLIER) -> list[CalculationRule]:
    return [
        CalculationRule(RuleId.POST_MONEY, POST_MONEY, (PRE_MONEY, INVESTMENT_AMOUNT), _post_money, tolerance=0.001),
        CalculationRule(RuleId.OWNERSHIP, OWNERSHIP, (INVESTMENT_AMOUNT, POST_MONEY), _ownership, tolerance=0.01),
        CalculationRule(
            RuleId.SHARES_ACQUIRED,
            SHARES_ACQUIRED,
            (INVESTMENT_AMOUNT, PRICE_PER_SHARE),
            shares_compute(multiplier),
            tolerance=1,
        ),
    ]


def format_for_type(field_type: str, number: float) -> str:
    if field_type == "percentage":
        return format_percentage(number)
    if field_type == "integer":
        return format_integer(number)
    return format_number(number)


class CalculationEngine:
    """Recomputes calculated fields after an edit.

    Every rule in one pass reads the same snapshot taken before any rule
    runs, so a value written by one rule reaches another rule only on the
    next edit cycle.
    """

    def __init__(
        self,
        store: FieldStore,
        rules: Iterable[CalculationRule] | None = None,
        bus: EventBus | None = None,
        multiplier: float = DEFAULT_UNIT_MULTIPLIER,
    ) -> None:
        self._store = store
        self._multiplier = multiplier
        self._rules: Dict[RuleId, CalculationRule] = {}
        for rule in rules if rules is not None else default_rules(multiplier):
            self._rules[rule.rule_id] = rule
        if bus is not None:
            bus.subscribe(Topic.UNIT_CHANGED, self._on_unit_changed)

    @property
    def multiplier(self) -> float:
        return self._multiplier

    def rules(self) -> list[CalculationRule]:
        return list(self._rules.values())

    def rule(self, rule_id: RuleId) -> CalculationRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleConfigError("RULE_UNKNOWN", f"Unknown rule: {rule_id}", str(rule_id))
        return rule

    def rule_for(self, target: str) -> CalculationRule | None:
        for rule in self._rules.values():
            if rule.target == target:
                return rule
        return None

    def calculable_fields(self) -> list[str]:
        return [rule.target for rule in self._rules.values()]

    def is_calculable(self, key: str) -> bool:
        return self.rule_for(key) is not None

    def dependencies(self, rule_id: RuleId) -> list[str]:
        return list(self.rule(rule_id).dependencies)

    def can_calculate(self, rule_id: RuleId, snapshot: Snapshot) -> bool:
        return all(dep in snapshot and not is_blank(snapshot[dep]) for dep in self.rule(rule_id).dependencies)

    def calculate(self, rule_id: RuleId, snapshot: Snapshot) -> float | None:
        rule = self.rule(rule_id)
        try:
            result = rule.compute(snapshot)
        except ZeroDivisionError:
            logger.info("calc_discarded rule=%s reason=division_by_zero", rule_id.value)
            return None
        except (TypeError, ValueError, OverflowError) as exc:
            logger.info("calc_discarded rule=%s reason=bad_input error=%s", rule_id.value, exc)
            return None
        if result is None or isinstance(result, bool) or not isinstance(result, (int, float)):
            logger.info("calc_discarded rule=%s reason=no_result", rule_id.value)
            return None
        if not math.isfinite(result):
            logger.info("calc_discarded rule=%s reason=non_finite", rule_id.value)
            return None
        return float(result)

    def calculate_all(self, snapshot: Snapshot) -> dict:
        """Single pass over every rule against ``snapshot``; returns an updated copy."""
        updated = dict(snapshot)
        for rule in self._rules.values():
            if not self.can_calculate(rule.rule_id, snapshot):
                continue
            value = self.calculate(rule.rule_id, snapshot)
            if value is not None:
                updated[rule.target] = value
        return updated

    def format_value(self, target: str, number: float) -> str:
        field_type = self._store.spec(target).type if self._store.has(target) else "number"
        return format_for_type(field_type, number)

    def run(self, changed_field: str | None = None) -> dict:
        """Run one calculation pass for an edit of ``changed_field``.

        Returns the writes made, keyed by target field.
        """
        snapshot = self._store.get_all_values()
        writes: Dict[str, str] = {}
        for rule in self._rules.values():
            if rule.target == changed_field:
                continue
            missing = [key for key in (rule.target, *rule.dependencies) if not self._store.has(key)]
            if missing:
                logger.warning("calc_skipped rule=%s reason=undeclared_field fields=%s", rule.rule_id.value, missing)
                continue
            if not self.can_calculate(rule.rule_id, snapshot):
                logger.debug("calc_skipped rule=%s reason=missing_dependency", rule.rule_id.value)
                continue
            result = self.calculate(rule.rule_id, snapshot)
            if result is None:
                continue
            formatted = self.format_value(rule.target, result)
            logger.debug(
                "calc_result rule=%s inputs=%s result=%s",
                rule.rule_id.value,
                {dep: snapshot.get(dep) for dep in rule.dependencies},
                formatted,
            )
            if self._store.get(rule.target) == formatted:
                continue
            self._store.set(rule.target, formatted, origin=ORIGIN_CALCULATION)
            writes[rule.target] = formatted
        return writes

    def redefine(self, rule_id: RuleId, compute: Compute) -> None:
        """Swap a rule's function; its target and dependencies stay as declared."""
        self._rules[rule_id] = replace(self.rule(rule_id), compute=compute)

    def set_unit_multiplier(self, multiplier: float) -> None:
        if multiplier == self._multiplier:
            return
        logger.info("calc_unit_changed multiplier_old=%s multiplier_new=%s", self._multiplier, multiplier)
        self._multiplier = multiplier
        if RuleId.SHARES_ACQUIRED in self._rules:
            self.redefine(RuleId.SHARES_ACQUIRED, shares_compute(multiplier))

    def _on_unit_changed(self, event: Event) -> None:
        multiplier = parse_number(event["payload"].get("multiplier"))
        if multiplier is None or multiplier <= 0:
            logger.warning("calc_unit_change_ignored payload=%s", event["payload"])
            return
        self.set_unit_multiplier(multiplier)

    def check_calculation(self, rule_id: RuleId, calculated: float, entered: Any) -> dict:
        rule = self.rule(rule_id)
        entered_num = parse_number(entered)
        difference = abs(calculated - entered_num) if entered_num is not None else math.inf
        return {
            "is_accurate": difference <= rule.tolerance,
            "difference": difference,
            "tolerance": rule.tolerance,
            "suggestion": calculated,
        }
