from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from peakjob.constants import DEFAULT_SERVER
from peakjob.errors import ValidationError
from peakjob.settings import Settings, default_settings_path, parse_mass_range


class TestSettingsStore(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "settings.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_gives_defaults(self):
        settings = Settings.load(self.path)
        self.assertEqual(DEFAULT_SERVER, settings.server)
        self.assertEqual("ask", settings.version)
        self.assertEqual(1, settings.poll_attempts)
        self.assertFalse(settings.sandboxed)

    def test_round_trip_never_writes_password(self):
        settings = Settings(username="joe", password="secret", project=504, rto="RTO-24")
        settings.save(self.path)
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertNotIn("password", raw)
        loaded = Settings.load(self.path)
        self.assertEqual(("joe", 504, "RTO-24", ""), (loaded.username, loaded.project, loaded.rto, loaded.password))

    def test_unknown_keys_ignored_and_types_coerced(self):
        self.path.write_text(
            json.dumps({"username": "joe", "project": "504", "timeout": 5, "bogus": 1}),
            encoding="utf-8",
        )
        settings = Settings.load(self.path)
        self.assertEqual(504, settings.project)
        self.assertEqual(5.0, settings.timeout)
        self.assertFalse(hasattr(settings, "bogus"))

    def test_corrupt_file_resets(self):
        self.path.write_text("{not json", encoding="utf-8")
        settings = Settings.load(self.path)
        self.assertEqual(DEFAULT_SERVER, settings.server)
        self.assertEqual(DEFAULT_SERVER, json.loads(self.path.read_text(encoding="utf-8"))["server"])

    def test_password_from_environment(self):
        settings = Settings(password="file").apply_environment({"PEAKJOB_PASSWORD": "env"})
        self.assertEqual("env", settings.password)
        settings = Settings(password="file").apply_environment({})
        self.assertEqual("file", settings.password)

    def test_sandbox_forms(self):
        self.assertIsNone(Settings(sandbox=None).sandbox_forced)
        self.assertTrue(Settings(sandbox="").sandboxed)
        self.assertIsNone(Settings(sandbox="").sandbox_forced)
        self.assertEqual("Done", Settings(sandbox="Done").sandbox_forced)

    def test_default_path_follows_home_override(self):
        self.assertEqual("settings.json", default_settings_path().name)
        self.assertIn("peakjob-home", str(default_settings_path()))


class TestMassRange(unittest.TestCase):
    def test_forms(self):
        self.assertEqual((None, None), parse_mass_range("[min]:[max]"))
        self.assertEqual((None, None), parse_mass_range(""))
        self.assertEqual((100, 2000), parse_mass_range("100:2000"))
        self.assertEqual((150, None), parse_mass_range("150.7:[max]"))
        self.assertEqual((None, 900), parse_mass_range(":900"))

    def test_invalid(self):
        for text in ("100", "a:b", "2000:100", "1:2:3"):
            with self.subTest(text=text):
                with self.assertRaises(ValidationError):
                    parse_mass_range(text)
