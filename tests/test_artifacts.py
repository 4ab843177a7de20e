#!/usr/bin/env python3
"""Tests for result records and solution output in arcfix/artifacts.py."""

import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from arcfix.artifacts import RESULT_FILE, ResultWriter, result_record
from arcfix.population import Individual
from arcfix.types import Exhausted, Fatal, Fixed, TestingSummary, TestResult, TestStatus


class TestResultRecord(unittest.TestCase):
    def test_fixed_record(self):
        individual = Individual(3, 2, Path("/tmp/arc/2/3"))
        individual.summary = TestingSummary(
            [TestResult(tests=4, successes=4, status=TestStatus.SUCCESS)] * 2
        )
        result = Fixed(
            individual=individual,
            lineage=("ASAT", "SHSB"),
            baseline_summary=individual.summary,
            validation_summary=individual.summary,
        )
        record = result_record(result)
        self.assertEqual(record["outcome"], "fixed")
        self.assertEqual(record["individual"]["generation"], 2)
        self.assertEqual(record["individual"]["score"], 1.0)
        self.assertEqual(record["lineage"], ["ASAT", "SHSB"])
        self.assertEqual(len(record["baseline_summary"]["results"]), 2)
        self.assertNotIn("results", record["validation_summary"])

    def test_exhausted_and_fatal_records(self):
        self.assertEqual(
            result_record(Exhausted(30, stopped=True)),
            {"outcome": "exhausted", "generations": 30, "stopped": True},
        )
        self.assertEqual(result_record(Fatal("no tests")), {"outcome": "fatal", "reason": "no tests"})

    def test_unknown_result_raises(self):
        with self.assertRaises(TypeError):
            result_record("done")


class TestResultWriter(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.writer = ResultWriter(self.tmp / "out")

    def test_write_result(self):
        with patch("sys.stderr", new_callable=io.StringIO) as mock_stderr:
            path = self.writer.write_result(Fatal("boom"), stats={"generations": 0}, history=[])
        self.assertEqual(path, self.tmp / "out" / RESULT_FILE)
        self.assertIn("[+] Result record written to", mock_stderr.getvalue())
        record = json.loads(path.read_text())
        self.assertEqual(record["reason"], "boom")
        self.assertEqual(record["stats"], {"generations": 0})
        self.assertIn("written_at", record)

    def test_copy_solution(self):
        individual = Individual(0, 1, self.tmp / "tmp" / "1" / "0")
        (individual.path / "bank").mkdir(parents=True)
        (individual.path / "bank" / "Account.java").write_text("fixed\n")

        with self.assertLogs("arcfix.artifacts", level="WARNING"):
            copied = self.writer.copy_solution(individual, ["bank/Account.java", "Main.java"])

        self.assertEqual(copied, [self.tmp / "out" / "solution" / "bank" / "Account.java"])
        self.assertEqual(copied[0].read_text(), "fixed\n")


if __name__ == "__main__":
    unittest.main()
