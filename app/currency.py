"""Display currency and unit multiplier for amount fields."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict

from dealform.numbers import format_number, parse_number

from event_bus import EventBus, Topic


logger = logging.getLogger("dealform.currency")

CURRENCIES: Dict[str, dict] = {
    "KRW": {
        "code": "KRW",
        "name": "한국 원",
        "symbol": "₩",
        "unit": "억원",
        "base_unit": "원",
        "multiplier": 100_000_000,
        "decimal_places": 2,
        "prefix": "",
        "suffix": "억원",
    },
    "USD": {
        "code": "USD",
        "name": "US Dollar",
        "symbol": "$",
        "unit": "million",
        "base_unit": "USD",
        "multiplier": 1_000_000,
        "decimal_places": 2,
        "prefix": "$",
        "suffix": "M",
    },
    "EUR": {
        "code": "EUR",
        "name": "Euro",
        "symbol": "€",
        "unit": "million",
        "base_unit": "EUR",
        "multiplier": 1_000_000,
        "decimal_places": 2,
        "prefix": "€",
        "suffix": "M",
    },
}


class CurrencyManager:
    """Holds the active currency; a switch is announced as ``unit.changed``."""

    def __init__(self, bus: EventBus | None = None, default: str = "KRW") -> None:
        self._bus = bus
        if default not in CURRENCIES:
            logger.warning("currency_unsupported code=%s fallback=KRW", default)
            default = "KRW"
        self._code = default

    def current(self) -> dict:
        return copy.deepcopy(CURRENCIES[self._code])

    @property
    def code(self) -> str:
        return self._code

    @property
    def multiplier(self) -> int:
        return CURRENCIES[self._code]["multiplier"]

    def supported(self) -> list[dict]:
        return [copy.deepcopy(c) for c in CURRENCIES.values()]

    def set_currency(self, code: str) -> bool:
        if code not in CURRENCIES:
            logger.warning("currency_unsupported code=%s", code)
            return False
        old = self._code
        self._code = code
        logger.info("currency_changed old=%s new=%s", old, code)
        if self._bus is not None:
            self._bus.publish(
                Topic.UNIT_CHANGED,
                {"old_currency": old, "new_currency": code, "multiplier": self.multiplier},
            )
        return True

    def to_base_unit(self, display_value: Any) -> float | None:
        number = parse_number(display_value)
        return None if number is None else number * self.multiplier

    def to_display_unit(self, base_value: Any) -> float | None:
        number = parse_number(base_value)
        return None if number is None else number / self.multiplier

    def format_value(self, value: Any, include_unit: bool = True) -> str:
        number = parse_number(value)
        if number is None:
            return "" if value is None else str(value)
        currency = CURRENCIES[self._code]
        text = currency["prefix"] + format_number(number, currency["decimal_places"])
        if include_unit:
            text += currency["suffix"]
        return text

    def unit_info(self) -> dict:
        currency = CURRENCIES[self._code]
        return {
            "code": currency["code"],
            "unit": currency["unit"],
            "base_unit": currency["base_unit"],
            "multiplier": currency["multiplier"],
            "symbol": currency["symbol"],
        }
