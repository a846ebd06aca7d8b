"""Tests for setup files: JSON and .conf parsing, storage, repository building."""

import json
import tempfile
import unittest
from pathlib import Path

from amc.matcher import InvalidSetup
from amc.models import MonitorSpec, Rotation, Setup
from amc.setup_manager import SetupManager, SetupRepository, parse_conf


class TestParseConf(unittest.TestCase):

    def test_parse(self):
        text = (
            "# docked at the office\n"
            "\n"
            "1C2D3E4F5A6B7C8D = 0x0, 0\n"
            "  aabbccdd00112233 = 1920 x 0 , 90\n"
        )
        setup = parse_conf("office", text)
        self.assertEqual(setup.name, "office")
        self.assertEqual(len(setup.monitors), 2)
        first, second = setup.monitors
        self.assertEqual(first.identity, "1c2d3e4f5a6b7c8d")
        self.assertEqual((second.x, second.y, second.rotation), (1920, 0, Rotation.LEFT))
        self.assertIsNone(second.width)

    def test_bad_line(self):
        with self.assertRaises(InvalidSetup) as ctx:
            parse_conf("bad", "abc = 0x0, 0\nnot a monitor\n")
        self.assertEqual(ctx.exception.setup_name, "bad")
        self.assertIn("line 2", ctx.exception.reason)

    def test_bad_rotation(self):
        with self.assertRaisesRegex(InvalidSetup, "invalid rotation at line 1"):
            parse_conf("rot", "abc = 0x0, 45\n")


class TestSetupManager(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.manager = SetupManager(self.dir)

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_and_load(self):
        setup = Setup("Docked", [
            MonitorSpec(identity="aa", width=1920, height=1080, refresh_rate=60.0, primary=True),
            MonitorSpec(identity="bb", x=1920, rotation=Rotation.RIGHT),
        ])
        path = self.manager.save(setup)
        self.assertEqual(path, self.dir / "Docked.json")

        data = json.loads(path.read_text())
        self.assertNotIn("width", data["monitors"][1])
        self.assertEqual(data["monitors"][1]["rotation"], 270)

        loaded = self.manager.load("Docked")
        self.assertEqual(loaded, setup)

    def test_load_missing(self):
        self.assertIsNone(self.manager.load("nope"))

    def test_delete(self):
        self.manager.save(Setup("Gone", [MonitorSpec(identity="aa")]))
        self.assertTrue(self.manager.delete("Gone"))
        self.assertFalse(self.manager.delete("Gone"))
        self.assertEqual(self.manager.list_setups(), [])

    def test_name_defaults_to_file_stem(self):
        (self.dir / "home.json").write_text(json.dumps({"monitors": [{"identity": "AA"}]}))
        (setup,), errors = self.manager.load_all()
        self.assertEqual(errors, [])
        self.assertEqual(setup.name, "home")
        self.assertEqual(setup.monitors[0].identity, "aa")

    def test_mixed_formats_in_name_order(self):
        (self.dir / "b.conf").write_text("bb = 0x0, 0\n")
        (self.dir / "a.json").write_text(json.dumps({"name": "a", "monitors": [{"identity": "aa"}]}))
        (self.dir / "notes.txt").write_text("ignored")
        self.assertEqual(self.manager.list_setups(), ["a", "b"])

    def test_unreadable_files_become_errors(self):
        (self.dir / "broken.json").write_text("{not json")
        (self.dir / "list.json").write_text("[]")
        (self.dir / "bad.conf").write_text("garbage\n")
        (self.dir / "ok.json").write_text(json.dumps({"monitors": [{"identity": "aa"}]}))

        setups, errors = self.manager.load_all()
        self.assertEqual([s.name for s in setups], ["ok"])
        self.assertEqual(sorted(e.setup_name for e in errors), ["bad", "broken", "list"])

    def test_repository_rejects_invalid(self):
        self.manager.save(Setup("dup", [MonitorSpec(identity="aa"), MonitorSpec(identity="aa")]))
        self.manager.save(Setup("good", [MonitorSpec(identity="aa")]))
        (self.dir / "broken.json").write_text("{")

        repo = self.manager.repository()
        self.assertEqual(repo.names, ["good"])
        self.assertEqual(len(repo), 1)
        self.assertEqual(sorted(e.setup_name for e in repo.rejected), ["broken", "dup"])

    def test_numeric_strings_are_coerced(self):
        (self.dir / "home.json").write_text(json.dumps(
            {"monitors": [{"identity": "ab", "x": "10", "width": "1920", "height": 1080}]}
        ))
        repo = self.manager.repository()
        self.assertEqual(repo.names, ["home"])
        spec = repo.setups[0].monitors[0]
        self.assertEqual((spec.x, spec.width, spec.height), (10, 1920, 1080))

    def test_mistyped_fields_rejected_without_losing_valid_setups(self):
        (self.dir / "bad_x.json").write_text(json.dumps({"monitors": [{"identity": "ab", "x": "left"}]}))
        (self.dir / "bad_primary.json").write_text(json.dumps({"monitors": [{"identity": "ab", "primary": "yes"}]}))
        (self.dir / "bad_list.json").write_text(json.dumps({"monitors": {"identity": "ab"}}))
        (self.dir / "null_x.json").write_text(json.dumps({"monitors": [{"identity": "ab", "x": None}]}))
        (self.dir / "good.json").write_text(json.dumps({"monitors": [{"identity": "cd"}]}))

        repo = self.manager.repository()
        self.assertEqual(repo.names, ["good"])
        self.assertEqual(
            sorted(e.setup_name for e in repo.rejected),
            ["bad_list", "bad_primary", "bad_x", "null_x"],
        )


class TestSetupRepository(unittest.TestCase):

    def test_keeps_declaration_order(self):
        setups = [Setup(n, [MonitorSpec(identity=n)]) for n in ("z", "a", "m")]
        repo = SetupRepository.build(setups)
        self.assertEqual([s.name for s in repo], ["z", "a", "m"])
        self.assertEqual(repo.rejected, ())

    def test_mistyped_entry_rejected(self):
        bad = Setup("bad", [MonitorSpec(identity="ab", x="10")])
        good = Setup("good", [MonitorSpec(identity="ab")])
        repo = SetupRepository.build([bad, good])
        self.assertEqual(repo.names, ["good"])
        (err,) = repo.rejected
        self.assertEqual(err.setup_name, "bad")
        self.assertIn("malformed monitor entry", err.reason)


if __name__ == "__main__":
    unittest.main()
