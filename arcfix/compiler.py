"""
Compilation of the working project between mutations.

The ProjectCompiler runs the project's build command (``ant compile`` by
default) inside the working directory and reports whether the build
succeeded along with the captured output.
"""

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

BUILD_FAILED_MARKER = "build failed"
COMPILE_TIMEOUT = 600  # seconds


@dataclass
class CompileResult:
    success: bool
    log: str = ""


class ProjectCompiler:
    """Build the project in ``project_dir`` with an external command."""

    def __init__(
        self,
        project_dir: Path,
        command: str = "ant compile",
        timeout: float = COMPILE_TIMEOUT,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.command = command
        self.timeout = timeout

    def is_valid_project_root(self) -> bool:
        return self.project_dir.is_dir() and any(self.project_dir.iterdir())

    def compile(self) -> CompileResult:
        """Run the build command and return its outcome.

        A build fails when the directory is not a populated project, the
        command cannot be launched, it exits non-zero, times out, or prints
        the build-failed marker on either stream.
        """
        if not self.is_valid_project_root():
            message = f"Invalid project root '{self.project_dir}'."
            logger.error(f"  [!] {message}")
            return CompileResult(False, message)

        cmd = shlex.split(self.command)
        print(f"    -> Compiling with: {' '.join(cmd)}", file=sys.stderr)
        try:
            proc = subprocess.run(
                cmd,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            message = f"Build timed out after {self.timeout} seconds."
            logger.warning(f"  [!] {message}")
            return CompileResult(False, message)
        except OSError as e:
            message = f"Unable to compile using '{cmd[0]}': {e}"
            logger.error(f"  [!] {message}")
            return CompileResult(False, message)

        log = f"STDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
        failed_marker = (
            BUILD_FAILED_MARKER in proc.stdout.lower() or BUILD_FAILED_MARKER in proc.stderr.lower()
        )
        if proc.returncode != 0 or failed_marker:
            print(f"    -> Build failed (exit code {proc.returncode}).", file=sys.stderr)
            return CompileResult(False, log)
        return CompileResult(True, log)
