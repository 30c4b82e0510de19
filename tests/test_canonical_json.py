import json
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from dealform.canonical_json import CanonicalJsonTypeError, canonical_dumps


class TestCanonicalJson(unittest.TestCase):
    def test_key_ordering_is_deterministic(self) -> None:
        a = {"투자금액": "10", "대표자": "홍길동"}
        b = {"대표자": "홍길동", "투자금액": "10"}
        self.assertEqual(canonical_dumps(a), canonical_dumps(b))

    def test_nested_dict_ordering(self) -> None:
        obj = {"data": {"b": 1, "a": 2}, "version": "1.0"}
        self.assertEqual(canonical_dumps(obj), '{"data":{"a":2,"b":1},"version":"1.0"}')

    def test_hangul_written_as_is(self) -> None:
        out = canonical_dumps({"투자대상": "가나다"})
        self.assertEqual(out, '{"투자대상":"가나다"}')
        self.assertNotIn("\\u", out)

    def test_indent_keeps_order(self) -> None:
        out = canonical_dumps({"b": [2, 1], "a": None}, indent=2)
        self.assertTrue(out.index('"a"') < out.index('"b"'))
        self.assertEqual(json.loads(out), {"a": None, "b": [2, 1]})

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({"bad": {1, 2, 3}})

    def test_non_string_key_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({1: "x"})

    def test_reject_non_finite(self) -> None:
        for bad in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(ValueError):
                canonical_dumps({"bad": bad})


if __name__ == "__main__":
    unittest.main()
