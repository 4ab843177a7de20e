"""
The shared working project used to build and test candidates.

Every individual keeps only its own copy of the project's source files. To
compile or test it, those files are loaded into the single working project
directory, which is reused and overwritten for each individual.
"""

import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from arcfix.utils import copy_files

if TYPE_CHECKING:
    from arcfix.compiler import CompileResult, ProjectCompiler


class Workspace:
    """Moves source files between individual trees and the working project."""

    def __init__(
        self,
        project_dir: Path,
        source_files: list[str],
        compiler: "ProjectCompiler",
    ) -> None:
        """
        Args:
            project_dir: The working project directory.
            source_files: Project-relative paths of the source files to mutate.
            compiler: Compiler that builds ``project_dir``.
        """
        self.project_dir = Path(project_dir)
        self.source_files = list(source_files)
        self.compiler = compiler

    def checkout(self, tree: Path) -> None:
        """Copy the source files of ``tree`` into the working project."""
        copy_files(tree, self.project_dir, self.source_files)

    def overlay(self, rel_path: str, mutant_file: Path) -> None:
        """Replace one source file of the working project with a mutant file."""
        target = self.project_dir / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(mutant_file, target)

    def store(self, tree: Path) -> None:
        """Copy the working project's source files into ``tree``."""
        copy_files(self.project_dir, tree, self.source_files)

    def build(self) -> "CompileResult":
        return self.compiler.compile()

    def load(self, tree: Path) -> "CompileResult":
        """Check out ``tree`` and compile it. Raises OSError if a copy fails."""
        self.checkout(tree)
        return self.build()
