from __future__ import annotations

import io
import tarfile
import tempfile
import unittest
from pathlib import Path

from peakjob.archive import (
    ArchiveMode,
    ArchiveReader,
    ArchiveWriter,
    decode_points,
    encode_points,
    iter_results,
    open_archive,
    pack_records,
    parse_input_index,
    parse_record_index,
    record_entry_name,
)
from peakjob.batch import Batch
from peakjob.errors import ValidationError

from tests.fakes import RecordingProgress


def _write_tar(path: Path, entries):
    """entries: list of (name, payload or None for a directory)."""
    with tarfile.open(path, "w:gz") as tar:
        for name, payload in entries:
            info = tarfile.TarInfo(name)
            if payload is None:
                info.type = tarfile.DIRTYPE
                tar.addfile(info)
            else:
                info.size = len(payload)
                tar.addfile(info, io.BytesIO(payload))


class TestEntryNames(unittest.TestCase):
    def test_fixed_width(self):
        self.assertEqual("record00000.txt", record_entry_name(0))
        self.assertEqual("record00042.txt", record_entry_name(42))
        self.assertEqual(42, parse_input_index(record_entry_name(42)))

    def test_result_names(self):
        self.assertEqual(7, parse_record_index("record00007.mass_list.txt"))
        self.assertEqual(7, parse_record_index("./P-1/record00007.mass_list.txt"))

    def test_mismatch_is_validation_error(self):
        for name in ("record00007.txt", "scan7.mass_list.txt", "record.mass_list.txt"):
            with self.subTest(name=name):
                with self.assertRaises(ValidationError):
                    parse_record_index(name)


class TestLineCodec(unittest.TestCase):
    def test_round_trip_is_exact(self):
        points = [(100.1, 1e-9), (1999.987654321, 123456.789), (0.1 + 0.2, 3.0)]
        self.assertEqual(points, decode_points(encode_points(points)))

    def test_comments_and_blank_lines_skipped(self):
        payload = b"# header\n\n100.0\t1.0\n   \n# mid comment\n200.0 2.0\n"
        self.assertEqual([(100.0, 1.0), (200.0, 2.0)], decode_points(payload))

    def test_strict_rejects_bad_line(self):
        with self.assertRaises(ValidationError) as ctx:
            decode_points(b"100.0\t1.0\n200.0\n", entry_name="record00001.txt")
        self.assertIn("record00001.txt line 2", str(ctx.exception))

    def test_lenient_drops_and_warns(self):
        warnings = []
        rows = decode_points(
            b"1 2 3 4\n1 2 x 4\n5 6 7 8\n",
            4,
            strict=False,
            on_warning=warnings.append,
        )
        self.assertEqual([(1.0, 2.0, 3.0, 4.0), (5.0, 6.0, 7.0, 8.0)], rows)
        self.assertEqual(1, len(warnings))


class TestArchiveRoundTrip(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _round_trip(self, records):
        path = self.tmp / "batch.scans.tar.gz"
        count = pack_records(path, Batch.from_points(records).records)
        self.assertEqual(len(records), count)
        decoded = {}
        with open_archive(path, ArchiveMode.READ) as reader:
            for name, stream in reader:
                decoded[parse_input_index(name)] = decode_points(stream)
        return decoded

    def test_round_trip_counts(self):
        for n in (0, 1, 7):
            with self.subTest(records=n):
                records = [[(100.0 + i + k / 3.0, float(k)) for k in range(i + 1)] for i in range(n)]
                decoded = self._round_trip(records)
                self.assertEqual(n, len(decoded))
                for i, points in enumerate(records):
                    self.assertEqual(points, decoded[i])

    def test_next_entry_sentinel_and_directories(self):
        path = self.tmp / "results.tar.gz"
        _write_tar(
            path,
            [
                ("./", None),
                ("P-1/", None),
                ("P-1/record00000.mass_list.txt", b"1 2 3 4\n"),
            ],
        )
        reader = ArchiveReader(path).open()
        try:
            name, stream = reader.next_entry()
            self.assertEqual("P-1/record00000.mass_list.txt", name)
            self.assertEqual(b"1 2 3 4\n", stream.read())
            self.assertEqual(("", None), reader.next_entry())
        finally:
            reader.close()

    def test_writer_exception_leaves_no_file(self):
        path = self.tmp / "broken.tar.gz"
        with self.assertRaises(RuntimeError):
            with ArchiveWriter(path) as writer:
                writer.write_entry("record00000.txt", b"1 2\n")
                raise RuntimeError("disk on fire")
        self.assertFalse(path.exists())
        self.assertFalse((self.tmp / "broken.tar.gz.part").exists())

    def test_unreadable_archive(self):
        path = self.tmp / "garbage.tar.gz"
        path.write_bytes(b"definitely not a tarball")
        with self.assertRaises(ValidationError):
            ArchiveReader(path).open()

    def test_iter_results(self):
        path = self.tmp / "results.tar.gz"
        _write_tar(
            path,
            [
                ("record00001.mass_list.txt", b"# mass\tintensity\tdm\tdi\n150.5 10 0.001 0.5\n"),
                ("record00000.mass_list.txt", b"100.25 5 0.002 0.25\n101.5 6 0.002 0.25\n"),
            ],
        )
        results = dict(iter_results(path))
        self.assertEqual([(150.5, 10.0, 0.001, 0.5)], results[1])
        self.assertEqual(2, len(results[0]))

    def test_iter_results_rejects_foreign_entry(self):
        path = self.tmp / "results.tar.gz"
        _write_tar(path, [("notes.txt", b"hello\n")])
        with self.assertRaises(ValidationError):
            list(iter_results(path))

    def test_pack_reports_progress(self):
        progress = RecordingProgress()
        pack_records(self.tmp / "p.tar.gz", Batch.from_points([[(1.0, 2.0)], [(3.0, 4.0)]]).records, progress)
        self.assertEqual(("start", 2, "Packing p.tar.gz"), progress.events[0])
        self.assertEqual(("finish",), progress.events[-1])
