import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.currency import CurrencyManager
from event_bus import EventBus, Topic


class TestCurrencyManager(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        self.events = []
        self.bus.subscribe(Topic.UNIT_CHANGED, self.events.append)
        self.currency = CurrencyManager(self.bus)

    def test_defaults_to_krw_eok(self) -> None:
        self.assertEqual(self.currency.code, "KRW")
        self.assertEqual(self.currency.multiplier, 100_000_000)
        self.assertEqual(self.currency.unit_info()["unit"], "억원")
        self.assertEqual(sorted(c["code"] for c in self.currency.supported()), ["EUR", "KRW", "USD"])

    def test_switch_publishes_unit_change(self) -> None:
        self.assertTrue(self.currency.set_currency("USD"))
        self.assertEqual(
            self.events[-1]["payload"],
            {"old_currency": "KRW", "new_currency": "USD", "multiplier": 1_000_000},
        )

    def test_unknown_currency_rejected(self) -> None:
        with self.assertLogs("dealform.currency", level="WARNING"):
            self.assertFalse(self.currency.set_currency("JPY"))
        self.assertEqual(self.currency.code, "KRW")
        self.assertEqual(self.events, [])

    def test_unit_conversion(self) -> None:
        self.assertEqual(self.currency.to_base_unit("10"), 1_000_000_000)
        self.assertEqual(self.currency.to_display_unit(250_000_000), 2.5)
        self.assertIsNone(self.currency.to_base_unit("abc"))

    def test_format_value(self) -> None:
        self.assertEqual(self.currency.format_value("1,234.5"), "1,234.5억원")
        self.assertEqual(self.currency.format_value(10, include_unit=False), "10")
        self.currency.set_currency("USD")
        self.assertEqual(self.currency.format_value(1.25), "$1.25M")

    def test_unsupported_default_falls_back(self) -> None:
        with self.assertLogs("dealform.currency", level="WARNING"):
            currency = CurrencyManager(default="GBP")
        self.assertEqual(currency.code, "KRW")


if __name__ == "__main__":
    unittest.main()
