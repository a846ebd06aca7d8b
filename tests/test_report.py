"""Tests for outcome events and reporters."""

import logging
import unittest

from amc import report


class TestLogReporter(unittest.TestCase):

    def test_levels(self):
        reporter = report.LogReporter()
        cases = [
            (report.Applied("Docked"), logging.INFO),
            (report.Applied("Docked", changed=False), logging.DEBUG),
            (report.AppliedDefault(), logging.INFO),
            (report.NoMatch(("ab", "cd")), logging.INFO),
            (report.AmbiguousMatch(("One", "Two")), logging.ERROR),
            (report.MatchedButUnsupported("Big", "ab@3840x2160+0+0"), logging.ERROR),
            (report.BackendFailure("BadMatch"), logging.ERROR),
            (report.OutputExcluded("DP-3", "no EDID"), logging.WARNING),
            (report.InvalidSetup("Dup", "duplicate identity ab"), logging.ERROR),
        ]
        for event, level in cases:
            with self.subTest(event=event):
                with self.assertLogs("amc.report", level="DEBUG") as logs:
                    reporter(event)
                self.assertEqual([r.levelno for r in logs.records], [level])

    def test_messages_name_the_subject(self):
        with self.assertLogs("amc.report") as logs:
            report.LogReporter()(report.AmbiguousMatch(("One", "Two")))
        self.assertIn("One, Two", logs.output[0])


class TestCollectingReporter(unittest.TestCase):

    def test_failed(self):
        collected = report.CollectingReporter()
        collected(report.NoMatch(("ab",)))
        collected(report.OutputExcluded("DP-3", "no EDID"))
        collected(report.AppliedDefault())
        self.assertFalse(collected.failed)
        collected(report.BackendFailure("gone"))
        self.assertTrue(collected.failed)
        self.assertEqual(len(collected), 4)


if __name__ == "__main__":
    unittest.main()
