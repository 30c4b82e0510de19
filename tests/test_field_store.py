import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from event_bus import EventBus, Topic
from field_store import (
    ORIGIN_CALCULATION,
    ORIGIN_USER,
    DuplicateFieldError,
    FieldSpec,
    FieldStore,
    UnknownFieldError,
)


class TestFieldStore(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        self.store = FieldStore(self.bus)
        self.store.register("투자대상", {"type": "text", "label": "투자대상", "required": True})
        self.store.register("투자방식", {"type": "select", "options": ["보통주", "전환사채"], "default": "보통주"})
        self.store.register("투자금액", FieldSpec(key="투자금액", type="currency", unit="억원"))

    def test_register_applies_defaults(self) -> None:
        self.assertEqual(self.store.get("투자방식"), "보통주")
        self.assertEqual(self.store.get("투자대상"), "")
        self.assertTrue(self.store.is_visible("투자대상"))
        self.assertEqual(self.store.label("투자방식"), "투자방식")
        self.assertTrue(self.store.spec("투자대상").required)
        self.assertTrue(self.store.spec("투자금액").is_numeric)

    def test_duplicate_registration_raises(self) -> None:
        with self.assertRaises(DuplicateFieldError) as ctx:
            self.store.register("투자대상", {"type": "text"})
        self.assertEqual(ctx.exception.code, "FIELD_DUPLICATE")

    def test_unknown_key_raises(self) -> None:
        with self.assertRaises(UnknownFieldError) as ctx:
            self.store.get("없는필드")
        self.assertEqual(ctx.exception.code, "FIELD_UNKNOWN")
        with self.assertRaises(UnknownFieldError):
            self.store.set("없는필드", "x")

    def test_non_finite_float_is_stored_as_text(self) -> None:
        seen = []
        self.bus.subscribe(Topic.FIELD_CHANGED, seen.append)
        self.store.set("투자금액", float("inf"))
        self.store.set("투자대상", float("nan"))
        self.assertEqual(self.store.get("투자금액"), "inf")
        self.assertEqual(self.store.get("투자대상"), "nan")
        self.assertEqual([e["payload"]["value"] for e in seen], ["inf", "nan"])

    def test_has_input_ignores_declared_defaults(self) -> None:
        self.assertFalse(self.store.has_input())
        self.assertEqual(self.store.default_value("투자방식"), "보통주")
        self.store.set("투자방식", "전환사채")
        self.assertTrue(self.store.has_input())
        self.store.set("투자방식", "보통주")
        self.store.set("투자대상", "가나다")
        self.assertTrue(self.store.has_input())

    def test_set_publishes_change_with_origin(self) -> None:
        seen = []
        self.bus.subscribe(Topic.FIELD_CHANGED, seen.append)
        self.store.set("투자금액", "10")
        self.store.set("투자금액", "11", origin=ORIGIN_CALCULATION)
        self.assertEqual([e["payload"]["origin"] for e in seen], [ORIGIN_USER, ORIGIN_CALCULATION])
        self.assertEqual(seen[0]["payload"]["field"], "투자금액")
        self.assertEqual(self.store.get("투자금액"), "11")

    def test_none_is_stored_as_empty(self) -> None:
        self.store.set("투자대상", None)
        self.assertEqual(self.store.get("투자대상"), "")

    def test_get_all_values_is_ordered_copy(self) -> None:
        values = self.store.get_all_values()
        self.assertEqual(list(values.keys()), ["투자대상", "투자방식", "투자금액"])
        values["투자대상"] = "changed"
        self.assertEqual(self.store.get("투자대상"), "")

    def test_hidden_field_keeps_value(self) -> None:
        self.store.set("투자금액", "10")
        self.assertTrue(self.store.set_visible("투자금액", False))
        self.assertFalse(self.store.set_visible("투자금액", False))
        self.assertEqual(self.store.get_all_values()["투자금액"], "10")
        self.assertNotIn("투자금액", self.store.visible_keys())

    def test_labels_are_metadata(self) -> None:
        self.assertTrue(self.store.set_label("투자대상", "회사명"))
        self.assertFalse(self.store.set_label("투자대상", "회사명"))
        self.assertEqual(self.store.label("투자대상"), "회사명")
        self.assertEqual(self.store.spec("투자대상").label, "투자대상")


class TestFieldSpec(unittest.TestCase):
    def test_from_dict_flattens_options(self) -> None:
        spec = FieldSpec.from_dict("투자방식", {"type": "select", "options": [{"value": "보통주", "label": "보통주"}, "전환사채"]})
        self.assertEqual(spec.options, ["보통주", "전환사채"])

    def test_unknown_type_falls_back_to_text(self) -> None:
        with self.assertLogs("dealform.fields", level="WARNING"):
            spec = FieldSpec.from_dict("x", {"type": "slider"})
        self.assertEqual(spec.type, "text")

    def test_calculated_fields_are_readonly(self) -> None:
        spec = FieldSpec.from_dict("지분율", {"type": "percentage", "calculated": True, "formula": "ownership"})
        self.assertTrue(spec.readonly)


if __name__ == "__main__":
    unittest.main()
