#!/usr/bin/env python3
"""Tests for TestResult and TestingSummary in arcfix/types.py."""

import unittest

from arcfix.types import Exhausted, Fatal, TestingSummary, TestResult, TestStatus


class TestTestResult(unittest.TestCase):
    """Test the TestResult record."""

    def test_defaults(self):
        result = TestResult()
        self.assertEqual(result.status, TestStatus.UNKNOWN)
        self.assertEqual((result.tests, result.failures, result.successes), (0, 0, 0))
        self.assertEqual(result.failed_methods, [])

    def test_none_messages_are_ignored(self):
        """add_info/add_warning/add_error skip None."""
        result = TestResult()
        result.add_info(None)
        result.add_warning(None)
        result.add_error(None)
        result.add_info("ran")
        self.assertEqual(result.info, ["ran"])
        self.assertEqual(result.warnings, [])
        self.assertEqual(result.errors, [])

    def test_to_dict_uses_status_value(self):
        result = TestResult(tests=3, successes=3, status=TestStatus.SUCCESS)
        data = result.to_dict()
        self.assertEqual(data["status"], "success")
        self.assertEqual(data["tests"], 3)


class TestTestingSummary(unittest.TestCase):
    """Test the TestingSummary rollup."""

    def setUp(self):
        self.results = [
            TestResult(tests=4, successes=4, status=TestStatus.SUCCESS, program_time=1.0),
            TestResult(
                tests=5,
                failures=1,
                status=TestStatus.DATA_RACE,
                program_time=3.0,
                failed_methods=["bank.AccountTest.testTransfer"],
            ),
            TestResult(
                tests=4,
                failures=2,
                status=TestStatus.DATA_RACE,
                program_time=2.0,
                failed_methods=["bank.AccountTest.testTransfer", "bank.AccountTest.testDeposit"],
            ),
        ]
        self.summary = TestingSummary(self.results)

    def test_grouping_by_status(self):
        self.assertEqual(len(self.summary.results_for(TestStatus.DATA_RACE)), 2)
        self.assertEqual(self.summary.results_for(TestStatus.DEADLOCK), ())
        self.assertEqual(self.summary.count(TestStatus.SUCCESS), 1)

    def test_counts(self):
        self.assertEqual(self.summary.run_count, 3)
        self.assertEqual(len(self.summary), 3)
        self.assertEqual(self.summary.unit_test_count, 5)
        self.assertEqual(self.summary.total_tests, 13)
        self.assertEqual(self.summary.total_successes, 4)

    def test_average_time(self):
        self.assertAlmostEqual(self.summary.average_time, 2.0)

    def test_failed_methods_unique_in_first_seen_order(self):
        self.assertEqual(
            self.summary.failed_methods,
            ("bank.AccountTest.testTransfer", "bank.AccountTest.testDeposit"),
        )

    def test_results_are_immutable_snapshot(self):
        """Changing the input list afterwards does not change the summary."""
        self.results.append(TestResult(status=TestStatus.SUCCESS))
        self.assertEqual(self.summary.run_count, 3)

    def test_all_successful(self):
        self.assertFalse(self.summary.all_successful)
        passing = TestingSummary([TestResult(status=TestStatus.SUCCESS)] * 3)
        self.assertTrue(passing.all_successful)
        self.assertFalse(TestingSummary().all_successful)

    def test_empty_summary(self):
        empty = TestingSummary()
        self.assertEqual(empty.run_count, 0)
        self.assertEqual(empty.average_time, 0.0)
        self.assertEqual(empty.histogram(), {})

    def test_to_dict(self):
        data = self.summary.to_dict(include_results=True)
        self.assertEqual(data["runs"], 3)
        self.assertEqual(data["statuses"], {"success": 1, "data_race": 2})
        self.assertEqual(len(data["results"]), 3)


class TestOutcomes(unittest.TestCase):
    def test_outcomes_are_frozen(self):
        with self.assertRaises(AttributeError):
            Fatal("boom").reason = "other"
        self.assertFalse(Exhausted(3).stopped)


if __name__ == "__main__":
    unittest.main()
