#!/usr/bin/env python3
"""Tests for the shared working project in arcfix/workspace.py."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from arcfix.compiler import CompileResult
from arcfix.workspace import Workspace


class TestWorkspace(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.project = self.tmp / "project"
        (self.project / "bank").mkdir(parents=True)
        (self.project / "bank" / "Account.java").write_text("project\n")
        (self.project / "build.xml").write_text("<project/>\n")

        self.tree = self.tmp / "tmp" / "1" / "0"
        (self.tree / "bank").mkdir(parents=True)
        (self.tree / "bank" / "Account.java").write_text("individual\n")

        self.compiler = MagicMock()
        self.compiler.compile.return_value = CompileResult(True)
        self.workspace = Workspace(self.project, ["bank/Account.java"], self.compiler)

    def test_checkout_only_touches_source_files(self):
        self.workspace.checkout(self.tree)
        self.assertEqual((self.project / "bank" / "Account.java").read_text(), "individual\n")
        self.assertTrue((self.project / "build.xml").exists())

    def test_overlay_replaces_one_file(self):
        mutant = self.tmp / "Account.java_3"
        mutant.write_text("mutant\n")
        self.workspace.overlay("bank/Account.java", mutant)
        self.assertEqual((self.project / "bank" / "Account.java").read_text(), "mutant\n")

    def test_store_copies_sources_out(self):
        target = self.tmp / "tmp" / "2" / "4"
        self.workspace.store(target)
        self.assertEqual((target / "bank" / "Account.java").read_text(), "project\n")
        self.assertFalse((target / "build.xml").exists())

    def test_load_checks_out_then_builds(self):
        result = self.workspace.load(self.tree)
        self.assertTrue(result.success)
        self.compiler.compile.assert_called_once_with()
        self.assertEqual((self.project / "bank" / "Account.java").read_text(), "individual\n")

    def test_load_of_missing_tree_raises(self):
        with self.assertRaises(OSError):
            self.workspace.load(self.tmp / "nowhere")
        self.compiler.compile.assert_not_called()


if __name__ == "__main__":
    unittest.main()
