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
from field_store import FieldStore
from visibility_eval import (
    ConditionalRule,
    LabelRule,
    VisibilityEvaluator,
    check_rules,
    eval_operator,
)

METHOD = "투자방식"


def _store(bus: EventBus) -> FieldStore:
    store = FieldStore(bus)
    store.register(METHOD, {"type": "select", "options": ["보통주", "전환우선주", "전환상환우선주", "전환사채"],
                            "default": "전환상환우선주"})
    store.register("상환이자", {"type": "percentage", "conditional": True, "condition_field": METHOD,
                            "condition_operator": "in_list", "condition_value": ["전환상환우선주", "전환사채"]})
    store.register("잔여분배이자", {"type": "percentage", "conditional": True, "condition_field": METHOD,
                              "condition_operator": "not_in_list", "condition_value": ["보통주", "전환사채"]})
    store.register("배당률", {"type": "percentage", "conditional": True, "condition_field": METHOD,
                           "condition_operator": "not_equals", "condition_value": "전환사채"})
    store.register("인수주식수", {"type": "integer", "label": "인수주식수"})
    store.register("지분율", {"type": "percentage", "label": "지분율"})
    return store


LABEL_RULES = [
    LabelRule("인수주식수", METHOD, "equals", "전환사채", "전환주식수"),
    LabelRule("지분율", METHOD, "equals", "전환사채", "전환시지분율"),
]


class TestVisibilityEvaluator(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        self.store = _store(self.bus)
        self.evaluator = VisibilityEvaluator.from_store(self.store, LABEL_RULES, self.bus)
        self.evaluator.evaluate()

    def _select(self, method: str) -> dict:
        self.store.set(METHOD, method)
        return self.evaluator.evaluate(METHOD, method)

    def _shown(self) -> dict:
        return {key: self.store.is_visible(key) for key in ("상환이자", "잔여분배이자", "배당률")}

    def test_default_method_shows_everything(self) -> None:
        self.assertEqual(self._shown(), {"상환이자": True, "잔여분배이자": True, "배당률": True})

    def test_convertible_bond_visibility_and_labels(self) -> None:
        result = self._select("전환사채")
        self.assertEqual(self._shown(), {"상환이자": True, "잔여분배이자": False, "배당률": False})
        self.assertEqual(result["visibility"], {"잔여분배이자": False, "배당률": False})
        self.assertEqual(self.store.label("인수주식수"), "전환주식수")
        self.assertEqual(self.store.label("지분율"), "전환시지분율")

    def test_common_stock_hides_interest_fields(self) -> None:
        self._select("보통주")
        self.assertEqual(self._shown(), {"상환이자": False, "잔여분배이자": False, "배당률": True})
        self.assertEqual(self.store.label("인수주식수"), "인수주식수")

    def test_labels_restored_when_condition_clears(self) -> None:
        self._select("전환사채")
        result = self._select("전환우선주")
        self.assertEqual(result["labels"], {"인수주식수": "인수주식수", "지분율": "지분율"})
        self.assertEqual(self._shown(), {"상환이자": False, "잔여분배이자": True, "배당률": True})

    def test_hidden_value_is_preserved(self) -> None:
        self.store.set("배당률", "3")
        self._select("전환사채")
        self.assertFalse(self.store.is_visible("배당률"))
        self.assertEqual(self.store.get_all_values()["배당률"], "3")
        self._select("보통주")
        self.assertTrue(self.store.is_visible("배당률"))
        self.assertEqual(self.store.get("배당률"), "3")

    def test_changes_are_published_once_per_pass(self) -> None:
        vis, labels = [], []
        self.bus.subscribe(Topic.VISIBILITY_CHANGED, vis.append)
        self.bus.subscribe(Topic.LABEL_CHANGED, labels.append)
        self._select("전환사채")
        self.assertEqual(len(vis), 1)
        self.assertEqual(len(labels), 1)
        self._select("전환사채")
        self.assertEqual(len(vis), 1)

    def test_unrelated_edit_skips_rules(self) -> None:
        self.assertEqual(self.evaluator.evaluate("지분율", "10"), {"visibility": {}, "labels": {}})

    def test_unknown_operator_shows_field(self) -> None:
        store = FieldStore()
        store.register("a", {"type": "text"})
        store.register("b", {"type": "text"})
        evaluator = VisibilityEvaluator(store, [ConditionalRule("b", "a", "matches_regex", "x")])
        store.set_visible("b", False)
        with self.assertLogs("dealform.visibility", level="WARNING"):
            evaluator.evaluate("a", "y")
        self.assertTrue(store.is_visible("b"))


class TestOperators(unittest.TestCase):
    def test_operator_table(self) -> None:
        cases = [
            ("equals", "a", "a", True),
            ("not_equals", "a", "a", False),
            ("greater_than", "1,000", "999", True),
            ("greater_than", "abc", "1", False),
            ("less_than", "5", "10", True),
            ("not_empty", " ", None, False),
            ("empty", "", None, True),
            ("contains", "전환상환우선주", "상환", True),
            ("contains", ["a", "b"], "b", True),
            ("in_list", "보통주", ["보통주"], True),
            ("not_in_list", "보통주", ["보통주"], False),
        ]
        for op, value, comparison, expected in cases:
            self.assertEqual(eval_operator(op, value, comparison), expected, op)

    def test_check_rules_reports_misconfiguration(self) -> None:
        rules = [
            ConditionalRule("b", "a", "sounds_like", "x"),
            ConditionalRule("b", "missing", "in_list", "x"),
        ]
        codes = {issue["code"] for issue in check_rules(rules, [], ["a", "b"])}
        self.assertEqual(codes, {"CONDITION_UNKNOWN_OP", "CONDITION_FIELD_UNKNOWN", "CONDITION_VALUE_NOT_LIST"})


if __name__ == "__main__":
    unittest.main()
