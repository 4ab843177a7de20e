"""
Test-suite execution for arcfix.

This module provides the ExecutionHarness class ("The Muscle") which:
- Runs the target's test suite as an isolated child process per run
- Polls the child for liveness and enforces a wall-clock timeout
- Enforces a memory ceiling over the child's whole process tree
- Classifies each run as SUCCESS, DATA_RACE, DEADLOCK, and so on
- Calibrates the timeout from a batch of exploratory runs
"""

import re
import shlex
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import IO, TYPE_CHECKING

import psutil

from arcfix.config import (
    DEFAULT_MEMORY_MB,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TIMEOUT,
)
from arcfix.types import TestingSummary, TestResult, TestStatus

if TYPE_CHECKING:
    from arcfix.population import Individual
    from arcfix.workspace import Workspace


# JUnit summary lines: "Tests run: 5,  Failures: 1" and "OK (5 tests)".
TESTS_RUN_REGEX = re.compile(r"Tests run: ([^,\s]+),\s+Failures: (\S+)")
SUCCESSES_REGEX = re.compile(r"OK \((\S+) test")
# Failure headers: "1) testTransfer(bank.AccountTest)".
FAILED_METHOD_REGEX = re.compile(r"^\s*\d+\) ([\w$]+)\(([\w.$]+)\)", re.MULTILINE)
# Printed by the JVM thread dump when it detects a deadlock.
DEADLOCK_MARKER = "Java-level deadlock:"

# Maximum number of characters of each stream kept on a TestResult.
OUTPUT_EXCERPT_CHARS = 4000

# Grace period for killed processes to be reaped.
KILL_WAIT_SECONDS = 5.0

# Reasons returned by ExecutionHarness._wait when it kills a process tree.
KILLED_BY_TIMEOUT = "timeout"
KILLED_BY_MEMORY = "memory"


class HarnessError(RuntimeError):
    """Raised when the harness cannot produce any usable measurement."""


def _excerpt(text: str) -> str:
    if len(text) <= OUTPUT_EXCERPT_CHARS:
        return text
    return "...\n" + text[-OUTPUT_EXCERPT_CHARS:]


def kill_process_tree(pid: int) -> None:
    """Kill a process and all of its descendants, then reap them."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    try:
        procs = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        procs = []
    procs.append(parent)
    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    psutil.wait_procs(procs, timeout=KILL_WAIT_SECONDS)


def process_tree_rss_mb(pid: int) -> float:
    """Return the resident memory of a process tree in megabytes."""
    try:
        parent = psutil.Process(pid)
        procs = [parent] + parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return 0.0
    total = 0
    for proc in procs:
        try:
            total += proc.memory_info().rss
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return total / (1024 * 1024)


def parse_counts(result: TestResult, stdout: str) -> bool:
    """Parse the test, failure and success counts into ``result``.

    Returns False if a summary line was found but its numbers could not be
    parsed or are inconsistent.
    """
    ok = True
    match = TESTS_RUN_REGEX.search(stdout)
    if match:
        try:
            result.tests = int(match.group(1))
            result.failures = int(match.group(2))
            if result.tests < 0 or not 0 <= result.failures <= result.tests:
                raise ValueError("inconsistent test and failure counts")
        except ValueError:
            result.add_error("Error: unable to fully parse # of tests and failures.")
            ok = False
    else:
        result.add_warning("Warning: unable to locate # of tests and failures.")

    match = SUCCESSES_REGEX.search(stdout)
    if match:
        try:
            result.successes = int(match.group(1))
            if result.successes < 0:
                raise ValueError("negative success count")
        except ValueError:
            result.add_error("Error: unable to fully parse # of successes.")
            ok = False
    else:
        result.add_warning("Warning: unable to locate # of successes.")

    result.failed_methods = [
        f"{cls}.{method}" for method, cls in FAILED_METHOD_REGEX.findall(stdout)
    ]
    return ok


def classify(
    result: TestResult,
    stdout: str,
    timed_out: bool,
    exploratory: bool,
    memory_exceeded: bool = False,
) -> TestStatus:
    """Classify one run from its output and whether it finished in time.

    A run killed for exceeding the memory ceiling is FAILED whatever it
    printed. The status is stored on ``result`` and also returned.
    """
    if memory_exceeded:
        result.add_info("Error: killed for exceeding the memory ceiling.")
        result.status = TestStatus.FAILED
        return result.status

    if timed_out:
        if DEADLOCK_MARKER in stdout:
            result.add_info("Error: Java-level deadlock detected.")
            result.status = TestStatus.DEADLOCK
        elif exploratory:
            result.add_info("Error: timeout (process did not finish in time).")
            result.status = TestStatus.TIMEOUT
        else:
            # An unexplained hang counts as a deadlock when scoring fitness
            result.add_info("Error: deadlock/timeout (process did not finish in time).")
            result.status = TestStatus.DEADLOCK
        return result.status

    if not parse_counts(result, stdout):
        result.add_info("Unknown: could not evaluate result.")
        result.status = TestStatus.UNKNOWN
    elif result.tests > 0 and result.failures > 0:
        result.add_info("Error: data race detected, some tests failed.")
        result.status = TestStatus.DATA_RACE
    elif result.tests == 0 and result.successes == 0:
        result.add_info("Error: deadlock detected, no tests or successes.")
        result.status = TestStatus.DEADLOCK
    else:
        total = result.tests if result.tests > 0 else result.successes
        if total == 0:
            result.add_error("Error: no tests executed.")
            result.status = TestStatus.FAILED
        else:
            result.add_info("Success: execution was successful.")
            result.status = TestStatus.SUCCESS
            # A passing JUnit run prints only "OK (N tests)"
            result.tests = total
            result.successes = total
    return result.status


class ExecutionHarness:
    """
    Runs the target's test suite and classifies each run.

    Each run launches ``test_command`` in ``project_dir``. The command may
    contain ``{memory_mb}`` and ``{project_dir}`` placeholders, e.g.
    ``java -Xmx{memory_mb}m -cp build:lib/junit.jar org.junit.runner.JUnitCore
    bank.AccountTest``.
    """

    def __init__(
        self,
        test_command: str | None,
        project_dir: Path,
        timeout: float = DEFAULT_TIMEOUT,
        memory_mb: int = DEFAULT_MEMORY_MB,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        exploratory: bool = False,
        workspace: "Workspace | None" = None,
    ):
        """
        Initialize the ExecutionHarness.

        Args:
            test_command: Command line template that runs the test suite once.
            project_dir: Working directory for the test process.
            timeout: Wall-clock limit per run, in seconds.
            memory_mb: Memory ceiling for the test process tree.
            poll_interval: Seconds between liveness checks.
            exploratory: Report unexplained hangs as TIMEOUT instead of DEADLOCK.
            workspace: Loads and builds an individual before it is tested.
        """
        self.test_command = test_command
        self.project_dir = Path(project_dir)
        self.timeout = timeout
        self.memory_mb = memory_mb
        self.poll_interval = poll_interval
        self.exploratory = exploratory
        self.workspace = workspace
        self.executions = 0

    def build_command(self) -> list[str]:
        """Expand the placeholders of the test command and split it into argv."""
        expanded = self.test_command.format(
            memory_mb=self.memory_mb, project_dir=self.project_dir
        )
        return shlex.split(expanded)

    def _wait(self, proc: subprocess.Popen, result: TestResult) -> str | None:
        """Poll ``proc`` until it exits, times out or exceeds the memory ceiling.

        Returns why the process tree was killed (KILLED_BY_TIMEOUT or
        KILLED_BY_MEMORY), or None if it exited on its own.
        """
        started = time.monotonic()
        deadline = started + self.timeout
        while True:
            time.sleep(self.poll_interval)
            if proc.poll() is not None:
                result.program_time = time.monotonic() - started
                return None
            if process_tree_rss_mb(proc.pid) > self.memory_mb:
                result.program_time = time.monotonic() - started
                result.add_error(f"Error: memory ceiling of {self.memory_mb}MB exceeded.")
                kill_process_tree(proc.pid)
                proc.wait()
                return KILLED_BY_MEMORY
            if time.monotonic() >= deadline:
                result.program_time = time.monotonic() - started
                kill_process_tree(proc.pid)
                proc.wait()
                return KILLED_BY_TIMEOUT

    @staticmethod
    def _read(stream: IO[bytes]) -> str:
        stream.seek(0)
        return stream.read().decode("utf-8", errors="replace")

    def run_once(self, exploratory: bool | None = None) -> TestResult:
        """Execute the test suite once and classify the outcome."""
        exploratory = self.exploratory if exploratory is None else exploratory
        result = TestResult()
        started = time.monotonic()
        self.executions += 1

        if not self.test_command:
            result.status = TestStatus.INVALID
            result.add_error("Error: no test suite command was configured.")
            return result
        if self.memory_mb <= 0:
            result.status = TestStatus.INVALID
            result.add_error(
                "Error: program memory size is less than 1MB, unable to run."
            )
            return result
        try:
            cmd = self.build_command()
        except (KeyError, IndexError, ValueError) as e:
            result.status = TestStatus.INVALID
            result.add_error(f"Error: malformed test command: {e}")
            return result
        result.command = " ".join(cmd)
        result.add_info(f"Max program execution time: {self.timeout}s")

        with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
            try:
                proc = subprocess.Popen(
                    cmd,
                    cwd=self.project_dir,
                    stdout=out,
                    stderr=err,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as e:
                result.status = TestStatus.INVALID
                result.add_error(f"Error: execution of the process failed. {e}")
                result.execution_time = time.monotonic() - started
                return result

            killed = self._wait(proc, result)
            stdout = self._read(out)
            stderr = self._read(err)

        result.exit_code = proc.returncode
        result.stdout = _excerpt(stdout)
        result.stderr = _excerpt(stderr)
        result.add_info(f"Exit code: {proc.returncode}")
        classify(
            result,
            stdout,
            timed_out=killed == KILLED_BY_TIMEOUT,
            exploratory=exploratory,
            memory_exceeded=killed == KILLED_BY_MEMORY,
        )
        result.execution_time = time.monotonic() - started
        print(
            f"    -> Run #{self.executions}: {result.status.name} "
            f"(tests={result.tests}, failures={result.failures}, "
            f"time={result.program_time:.2f}s)",
            file=sys.stderr,
        )
        return result

    def _invalid_summary(self, message: str) -> TestingSummary:
        result = TestResult(status=TestStatus.INVALID)
        result.add_error(message)
        return TestingSummary([result])

    def execute(
        self,
        individual: "Individual | None" = None,
        runs: int = 1,
        exploratory: bool | None = None,
    ) -> TestingSummary:
        """Run the test suite ``runs`` times for ``individual``.

        When a workspace is configured, the individual's sources are loaded
        into the working project and built first. An INVALID first run ends
        the batch early.
        """
        if runs <= 0:
            return TestingSummary()

        if individual is not None and self.workspace is not None:
            try:
                build = self.workspace.load(individual.path)
            except OSError as e:
                return self._invalid_summary(f"Error: could not load {individual.path}: {e}")
            if not build.success:
                return self._invalid_summary(f"Error: could not build {individual.path}.")

        results = [self.run_once(exploratory)]
        if results[0].status is TestStatus.INVALID:
            return TestingSummary(results)
        for _ in range(1, runs):
            results.append(self.run_once(exploratory))
        return TestingSummary(results)

    def calibrate_timeout(self, runs: int, multiplier: float) -> float:
        """Set the timeout to ``multiplier`` times the average run time.

        The suite is executed ``runs`` times in exploratory mode using the
        current timeout as the ceiling. Raises HarnessError if every run was
        INVALID.
        """
        print(f"[*] Calibrating timeout over {runs} test-suite executions...", file=sys.stderr)
        summary = self.execute(None, runs, exploratory=True)
        if summary.run_count == 0 or summary.count(TestStatus.INVALID) == summary.run_count:
            raise HarnessError("All calibration runs were invalid.")

        average = sum(r.execution_time for r in summary.results) / summary.run_count
        self.timeout = average * multiplier
        print(
            f"[+] Average execution time {average:.2f}s; timeout set to {self.timeout:.2f}s.",
            file=sys.stderr,
        )
        return self.timeout
