#!/usr/bin/env python3
"""
Tests for generic helpers.

This module contains unit tests for the TeeLogger, the source tree copy
helpers and run statistics persistence in arcfix/utils.py.
"""

import io
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from arcfix.utils import (
    TeeLogger,
    copy_files,
    copy_tree,
    find_source_files,
    load_run_stats,
    remove_tree,
    save_run_stats,
)


class TestTeeLogger(unittest.TestCase):
    """Test the console/file tee."""

    def setUp(self):
        self.log_path = Path(tempfile.mkdtemp()) / "run.log"
        self.console = io.StringIO()

    def _tee(self, verbose=True):
        return TeeLogger(self.log_path, self.console, verbose=verbose)

    def test_writes_to_both_outputs(self):
        tee = self._tee()
        print("[+] Starting", file=tee)
        tee.close()
        self.assertEqual(self.console.getvalue(), "[+] Starting\n")
        self.assertEqual(self.log_path.read_text(), "[+] Starting\n")

    def test_repeated_lines_are_collapsed(self):
        tee = self._tee()
        for _ in range(3):
            print("  [!] Warning: slow run", file=tee)
        print("done", file=tee)
        tee.close()
        self.assertEqual(
            self.console.getvalue(), "  [!] Warning: slow run (×3)\ndone\n"
        )

    def test_multi_line_blocks_are_written_at_once(self):
        tee = self._tee()
        print("line one\nline two", file=tee)
        self.assertEqual(self.console.getvalue(), "line one\nline two\n")
        tee.close()

    def test_quiet_mode_drops_detail_lines(self):
        tee = self._tee(verbose=False)
        print("    -> Run #4: SUCCESS (tests=3, failures=0, time=0.20s)", file=tee)
        print("  [~] Trying ASAT mutant Account.java_2", file=tee)
        print("[+] Best of generation 1", file=tee)
        tee.close()
        self.assertEqual(self.console.getvalue(), "[+] Best of generation 1\n")

    def test_verbose_mode_keeps_detail_lines(self):
        tee = self._tee()
        print("    -> Run #4: SUCCESS", file=tee)
        tee.close()
        self.assertIn("Run #4", self.log_path.read_text())


class TestTreeHelpers(unittest.TestCase):
    """Test the source tree copy helpers."""

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.src = self.tmp / "src"
        (self.src / "bank").mkdir(parents=True)
        (self.src / "bank" / "Account.java").write_text("a\n")
        (self.src / "Main.java").write_text("m\n")
        (self.src / "build.xml").write_text("<project/>\n")

    def test_find_source_files(self):
        self.assertEqual(find_source_files(self.src), ["Main.java", "bank/Account.java"])

    def test_copy_tree_replaces_destination(self):
        dst = self.tmp / "dst"
        dst.mkdir()
        (dst / "stale.txt").write_text("old\n")
        copy_tree(self.src, dst)
        self.assertFalse((dst / "stale.txt").exists())
        self.assertEqual((dst / "bank" / "Account.java").read_text(), "a\n")

    def test_copy_tree_requires_directory(self):
        with self.assertRaises(NotADirectoryError):
            copy_tree(self.src / "Main.java", self.tmp / "dst")

    def test_copy_files_creates_parents(self):
        dst = self.tmp / "tree"
        copy_files(self.src, dst, ["bank/Account.java"])
        self.assertEqual((dst / "bank" / "Account.java").read_text(), "a\n")
        self.assertFalse((dst / "Main.java").exists())

    def test_remove_tree(self):
        remove_tree(self.src)
        self.assertFalse(self.src.exists())
        remove_tree(self.src)


class TestRunStats(unittest.TestCase):
    """Test cumulative run statistics persistence."""

    def setUp(self):
        self.path = Path(tempfile.mkdtemp()) / "arc_run_stats.json"

    def test_defaults_when_missing(self):
        stats = load_run_stats(self.path)
        self.assertEqual(stats["total_runs"], 0)
        self.assertEqual(stats["fixes_found"], 0)

    def test_round_trip(self):
        stats = load_run_stats(self.path)
        stats["total_runs"] = 3
        save_run_stats(stats, self.path)
        loaded = load_run_stats(self.path)
        self.assertEqual(loaded["total_runs"], 3)
        self.assertIsNotNone(loaded["last_update_time"])

    def test_corrupt_file_starts_fresh(self):
        self.path.write_text("{not json")
        with patch("sys.stderr", new_callable=io.StringIO) as mock_stderr:
            stats = load_run_stats(self.path)
        self.assertEqual(stats["total_runs"], 0)
        self.assertIn("Could not load run stats", mock_stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
