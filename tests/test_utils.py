"""Tests for config paths and settings."""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from amc.utils import DEFAULT_SETTINGS, config_dir, load_app_settings, read_json, setups_dir, write_json


class TestPaths(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_xdg_config_home(self):
        with mock.patch.dict(os.environ, {"XDG_CONFIG_HOME": str(self.tmp)}):
            d = config_dir()
        self.assertEqual(d, self.tmp / "amc")
        self.assertTrue(d.is_dir())

    def test_override(self):
        d = config_dir(self.tmp / "custom")
        self.assertEqual(d, self.tmp / "custom")
        self.assertEqual(setups_dir(d), d / "setups")
        self.assertTrue((d / "setups").is_dir())


class TestSettings(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_defaults_when_missing(self):
        self.assertEqual(load_app_settings(self.base), DEFAULT_SETTINGS)

    def test_merged_over_defaults(self):
        write_json(self.base / "settings.json", {"debounce_ms": 100, "use_udev": False})
        settings = load_app_settings(self.base)
        self.assertEqual(settings["debounce_ms"], 100)
        self.assertFalse(settings["use_udev"])
        self.assertEqual(settings["retry_delay"], DEFAULT_SETTINGS["retry_delay"])

    def test_broken_file_warns(self):
        (self.base / "settings.json").write_text("{oops")
        with self.assertLogs("amc.utils", level="WARNING"):
            self.assertEqual(load_app_settings(self.base), DEFAULT_SETTINGS)

    def test_read_json(self):
        self.assertIsNone(read_json(self.base / "missing.json"))
        write_json(self.base / "sub" / "x.json", {"a": [1, 2]})
        self.assertEqual(json.loads((self.base / "sub" / "x.json").read_text()), {"a": [1, 2]})
        self.assertEqual(read_json(self.base / "sub" / "x.json"), {"a": [1, 2]})


if __name__ == "__main__":
    unittest.main()
