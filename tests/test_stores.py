import os
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import ENVELOPE_VERSION, FileSnapshotStore, MemorySnapshotStore, make_envelope, validate_envelope


class TestEnvelope(unittest.TestCase):
    def test_make_envelope(self) -> None:
        envelope = make_envelope({"투자대상": "가나다"})
        self.assertEqual(envelope["version"], ENVELOPE_VERSION)
        self.assertTrue(envelope["timestamp"].endswith("Z"))
        self.assertTrue(validate_envelope(envelope))

    def test_validate_envelope_rejects_bad_shapes(self) -> None:
        self.assertFalse(validate_envelope(None))
        self.assertFalse(validate_envelope({"data": [], "timestamp": "t", "version": "1.0"}))
        self.assertFalse(validate_envelope({"data": {}, "version": "1.0"}))


class TestMemorySnapshotStore(unittest.TestCase):
    def test_save_load_clear(self) -> None:
        store = MemorySnapshotStore()
        self.assertIsNone(store.load())
        self.assertTrue(store.save({"투자금액": "10"}))
        self.assertEqual(store.load(), {"투자금액": "10"})
        self.assertTrue(store.clear())
        self.assertIsNone(store.load())

    def test_backups_are_capped(self) -> None:
        store = MemorySnapshotStore()
        for i in range(7):
            store.save({"투자금액": str(i)})
        backups = store.list_backups()
        self.assertEqual(len(backups), 5)
        self.assertEqual(store.restore_backup(backups[0]["id"]), {"투자금액": "6"})
        self.assertEqual(store.restore_backup(backups[-1]["id"]), {"투자금액": "2"})
        self.assertIsNone(store.restore_backup("missing"))

    def test_unserializable_values_fail_softly(self) -> None:
        store = MemorySnapshotStore()
        with self.assertLogs("dealform.stores", level="WARNING"):
            self.assertFalse(store.save({"bad": float("nan")}))
        self.assertIsNone(store.load())


class TestFileSnapshotStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name) / "snapshots"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_round_trip_survives_new_instance(self) -> None:
        self.assertTrue(FileSnapshotStore(self.directory).save({"투자대상": "가나다"}))
        store = FileSnapshotStore(self.directory)
        self.assertEqual(store.load(), {"투자대상": "가나다"})
        self.assertEqual(len(store.list_backups()), 1)
        text = (self.directory / "snapshot.json").read_text(encoding="utf-8")
        self.assertIn("가나다", text)

    def test_clear_removes_current_snapshot(self) -> None:
        store = FileSnapshotStore(self.directory)
        store.save({"a": "1"})
        self.assertTrue(store.clear())
        self.assertIsNone(store.load())
        self.assertEqual(len(store.list_backups()), 1)

    def test_corrupt_file_loads_as_nothing(self) -> None:
        self.directory.mkdir(parents=True)
        (self.directory / "snapshot.json").write_text("{not json", encoding="utf-8")
        with self.assertLogs("dealform.stores", level="WARNING"):
            self.assertIsNone(FileSnapshotStore(self.directory).load())

    def test_invalid_envelope_loads_as_nothing(self) -> None:
        self.directory.mkdir(parents=True)
        (self.directory / "snapshot.json").write_text('{"data": "x"}', encoding="utf-8")
        self.assertIsNone(FileSnapshotStore(self.directory).load())


if __name__ == "__main__":
    unittest.main()
