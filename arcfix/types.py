"""Shared type definitions for arcfix.

This module defines the records that flow between the harness, the
population model and the search loop. Keeping them in one place avoids
circular imports between the orchestrator and its collaborators.

TestResult is a mutable dataclass because the harness fills it in while a
run is being classified. TestingSummary is an immutable rollup of a batch
of results. The RepairResult hierarchy uses frozen dataclasses so callers
can dispatch on isinstance() instead of inspecting flags.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from arcfix.population import Individual


class TestStatus(Enum):
    """Classification of a single test-suite execution."""

    __test__ = False

    SUCCESS = "success"
    FAILED = "failed"
    DATA_RACE = "data_race"
    DEADLOCK = "deadlock"
    TIMEOUT = "timeout"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclass
class TestResult:
    """The outcome of one execution of the target's test suite.

    Times are in seconds. ``execution_time`` is measured by the harness
    around the whole run; ``program_time`` is the time the process was
    observed alive, which excludes the harness bookkeeping.
    """

    __test__ = False

    tests: int = 0
    failures: int = 0
    successes: int = 0
    execution_time: float = 0.0
    program_time: float = 0.0
    command: str | None = None
    status: TestStatus = TestStatus.UNKNOWN
    exit_code: int | None = None
    failed_methods: list[str] = field(default_factory=list)
    info: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""

    def add_info(self, message: str | None) -> None:
        if message is not None:
            self.info.append(message)

    def add_warning(self, message: str | None) -> None:
        if message is not None:
            self.warnings.append(message)

    def add_error(self, message: str | None) -> None:
        if message is not None:
            self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the result."""
        return {
            "tests": self.tests,
            "failures": self.failures,
            "successes": self.successes,
            "execution_time": round(self.execution_time, 4),
            "program_time": round(self.program_time, 4),
            "command": self.command,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "failed_methods": list(self.failed_methods),
            "info": list(self.info),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


class TestingSummary:
    """An immutable rollup of the test results for one individual.

    Results are grouped by status, and the summary exposes the number of
    runs, the largest unit-test count seen in any run, the average program
    time and the unique failed test methods in first-seen order.
    """

    __test__ = False

    def __init__(self, results: Iterable[TestResult] = ()) -> None:
        self._results: tuple[TestResult, ...] = tuple(results)
        self._by_status: dict[TestStatus, tuple[TestResult, ...]] = {}

        grouped: dict[TestStatus, list[TestResult]] = {}
        failed: list[str] = []
        unit_tests = 0
        total_time = 0.0
        for result in self._results:
            grouped.setdefault(result.status, []).append(result)
            for method in result.failed_methods:
                if method not in failed:
                    failed.append(method)
            unit_tests = max(unit_tests, result.tests)
            total_time += result.program_time

        self._by_status = {status: tuple(items) for status, items in grouped.items()}
        self._failed_methods = tuple(failed)
        self._unit_test_count = unit_tests
        self._average_time = total_time / len(self._results) if self._results else 0.0

    @property
    def results(self) -> tuple[TestResult, ...]:
        return self._results

    @property
    def run_count(self) -> int:
        return len(self._results)

    @property
    def unit_test_count(self) -> int:
        return self._unit_test_count

    @property
    def average_time(self) -> float:
        return self._average_time

    @property
    def failed_methods(self) -> tuple[str, ...]:
        return self._failed_methods

    @property
    def total_tests(self) -> int:
        return sum(r.tests for r in self._results)

    @property
    def total_successes(self) -> int:
        return sum(r.successes for r in self._results)

    @property
    def all_successful(self) -> bool:
        """True when there is at least one run and every run is SUCCESS."""
        return bool(self._results) and self.count(TestStatus.SUCCESS) == len(self._results)

    def results_for(self, status: TestStatus) -> tuple[TestResult, ...]:
        """Return the results with the given status, in execution order."""
        return self._by_status.get(status, ())

    def count(self, status: TestStatus) -> int:
        return len(self._by_status.get(status, ()))

    def histogram(self) -> dict[str, int]:
        return {status.value: len(items) for status, items in self._by_status.items()}

    def to_dict(self, include_results: bool = False) -> dict[str, Any]:
        """Return a JSON-serializable view of the summary."""
        data: dict[str, Any] = {
            "runs": self.run_count,
            "unit_test_count": self.unit_test_count,
            "average_time": round(self.average_time, 4),
            "statuses": self.histogram(),
            "failed_methods": list(self.failed_methods),
        }
        if include_results:
            data["results"] = [r.to_dict() for r in self._results]
        return data

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        return f"TestingSummary(runs={self.run_count}, statuses={self.histogram()})"


# --- Search outcomes ---


@dataclass(frozen=True)
class Fixed:
    """A validated fix was found."""

    individual: Individual
    lineage: tuple[str, ...]
    baseline_summary: TestingSummary
    validation_summary: TestingSummary


@dataclass(frozen=True)
class Exhausted:
    """The generation cap was reached, or a stop was requested, without a fix."""

    generations: int
    stopped: bool = False


@dataclass(frozen=True)
class Fatal:
    """The search could not continue; ``reason`` is the first cause."""

    reason: str


RepairResult = Fixed | Exhausted | Fatal
