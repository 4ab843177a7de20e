"""
Extended validation of candidate fixes.

A candidate whose baseline runs all passed may simply have been lucky with
the thread schedule. The FixValidator re-executes it many more times and
accepts it only if that larger batch passes completely as well.
"""

import sys
from typing import TYPE_CHECKING

from arcfix.config import DEFAULT_VALIDATION_RUNS
from arcfix.types import TestingSummary, TestStatus

if TYPE_CHECKING:
    from arcfix.events import EventReporter
    from arcfix.harness import ExecutionHarness
    from arcfix.population import Individual


class FixValidator:
    """Accept a candidate only after a large, fully successful validation batch."""

    def __init__(
        self,
        harness: "ExecutionHarness",
        validation_runs: int = DEFAULT_VALIDATION_RUNS,
        reporter: "EventReporter | None" = None,
    ) -> None:
        self.harness = harness
        self.validation_runs = validation_runs
        self.reporter = reporter
        self.validation_summaries: dict[str, TestingSummary] = {}

    @staticmethod
    def is_final_candidate(individual: "Individual") -> bool:
        """True if the individual's baseline summary is 100% SUCCESS over at least one run."""
        summary = individual.summary
        return summary is not None and summary.all_successful

    def _debug(self, message: str) -> None:
        if self.reporter is not None:
            self.reporter.debug(message)

    def is_final_solution(self, individual: "Individual") -> bool:
        """Re-test a final candidate ``validation_runs`` times and accept it on a clean sweep.

        Never raises: any harness error or shortfall in the number of runs
        counts as a rejection.
        """
        if not self.is_final_candidate(individual):
            return False

        print(
            f"  [~] Validating {individual} against {self.validation_runs} "
            "test-suite executions...",
            file=sys.stderr,
        )
        self._debug(
            f"Evaluating potential solution {individual.key} against "
            f"{self.validation_runs} test-suite executions."
        )
        try:
            summary = self.harness.execute(individual, self.validation_runs)
        except Exception as e:
            print(f"  [!] Validation of {individual.key} failed: {e}", file=sys.stderr)
            self._debug(f"Failed to re-test {individual.key}: {e}")
            return False
        self.validation_summaries[individual.key] = summary

        if summary.run_count != self.validation_runs:
            self._debug(f"Failed to re-test fully. Only ran {summary.run_count} tests.")
            return False
        successes = summary.count(TestStatus.SUCCESS)
        self._debug(f"Successes: {successes}/{summary.run_count}")
        if successes != summary.run_count:
            print(
                f"  [-] Rejected {individual.key}: {successes}/{summary.run_count} "
                "validation runs passed.",
                file=sys.stderr,
            )
            return False
        print(f"  [+] {individual.key} passed validation.", file=sys.stderr)
        return True

    def validation_summary(self, individual: "Individual") -> TestingSummary | None:
        return self.validation_summaries.get(individual.key)
