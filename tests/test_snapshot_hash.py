import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from dealform.snapshot_hash import snapshot_hash


class TestSnapshotHash(unittest.TestCase):
    def test_hash_ignores_key_order(self) -> None:
        a = {"투자금액": "10", "투자전가치": "90"}
        b = {"투자전가치": "90", "투자금액": "10"}
        self.assertEqual(snapshot_hash(a), snapshot_hash(b))

    def test_hash_tracks_values(self) -> None:
        self.assertNotEqual(snapshot_hash({"지분율": "10.00"}), snapshot_hash({"지분율": "10.01"}))

    def test_hash_format(self) -> None:
        h = snapshot_hash({"a": 1})
        self.assertTrue(h.startswith("sha256:"))
        self.assertEqual(len(h), len("sha256:") + 64)

    def test_hash_rejects_nan(self) -> None:
        with self.assertRaises(ValueError):
            snapshot_hash({"bad": float("nan")})


if __name__ == "__main__":
    unittest.main()
