from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from peakjob.batch import Batch, Record, load_batch, save_batch
from peakjob.errors import ValidationError


class TestBatch(unittest.TestCase):
    def test_meta_store(self):
        batch = Batch.from_points([[(1.0, 2.0)]])
        batch.set_meta("peakjob:job", "P-1")
        self.assertEqual("P-1", batch.get_meta("peakjob:job"))
        batch.remove_meta("peakjob:job")
        batch.remove_meta("peakjob:job")
        self.assertIsNone(batch.get_meta("peakjob:job"))

    def test_merge_results(self):
        batch = Batch.from_points([[(1.0, 2.0)], [(3.0, 4.0)]])
        batch.merge_results(1, [(3.5, 40.0, 0.01, 0.5)], {"action": "peak_picking"})
        record = batch[1]
        self.assertEqual([(3.5, 40.0)], record.points)
        self.assertEqual([(0.01, 0.5)], record.uncertainties)
        self.assertTrue(record.centroided)
        self.assertEqual([{"action": "peak_picking"}], record.processing)
        self.assertTrue(batch.is_centroided())

    def test_merge_out_of_range(self):
        batch = Batch.from_points([[(1.0, 2.0)]])
        with self.assertRaises(ValidationError):
            batch.merge_results(3, [], {})

    def test_drop_data_keeps_record_slots(self):
        batch = Batch.from_points([[(1.0, 2.0)], [(3.0, 4.0)]])
        batch.drop_data()
        self.assertEqual(2, len(batch))
        self.assertEqual([], batch[0].points)

    def test_sort_keeps_uncertainties_aligned(self):
        record = Record(points=[(2.0, 20.0), (1.0, 10.0)], uncertainties=[(0.2, 2.0), (0.1, 1.0)])
        record.sort_by_position()
        self.assertEqual([(1.0, 10.0), (2.0, 20.0)], record.points)
        self.assertEqual([(0.1, 1.0), (0.2, 2.0)], record.uncertainties)


class TestBatchFiles(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_and_load(self):
        batch = Batch.from_points([[(100.125, 1.5), (200.0, 2.5)], []])
        batch.set_meta("peakjob:job", "P-1")
        path = save_batch(batch, self.tmp / "nested" / "batch.json")
        loaded = load_batch(path)
        self.assertEqual(batch.to_dict(), loaded.to_dict())
        self.assertFalse((self.tmp / "nested" / "batch.json.tmp").exists())

    def test_load_errors(self):
        missing = self.tmp / "missing.json"
        broken = self.tmp / "broken.json"
        broken.write_text("{", encoding="utf-8")
        wrong = self.tmp / "wrong.json"
        wrong.write_text(json.dumps([1, 2]), encoding="utf-8")
        malformed = self.tmp / "malformed.json"
        malformed.write_text(json.dumps({"records": [{"points": [[1.0]]}]}), encoding="utf-8")
        for path in (missing, broken, wrong, malformed):
            with self.subTest(path=path.name):
                with self.assertRaises(ValidationError):
                    load_batch(path)
