"""
Mutation selection for the repair search.

This module provides the MutationSelector class ("The Alchemist"), which
decides how a candidate is mutated next. The choice of operator category
follows the symptoms the candidate showed when it was tested: the more of
its failing runs were data races rather than deadlocks, the more likely a
race-fixing operator is chosen.
"""

import random
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from arcfix.operators import (
    OPERATORS,
    MutationOperator,
    data_race_operators,
    deadlock_operators,
    operator_for_file,
)
from arcfix.population import Mutant
from arcfix.types import TestingSummary, TestStatus

if TYPE_CHECKING:
    from arcfix.population import Individual

RANDOM = random.Random()


class MutationSelector:
    """Bias operator choice towards the failure category a candidate exhibits."""

    def __init__(self, operators: tuple[MutationOperator, ...] = OPERATORS) -> None:
        self.operators = operators
        self.registered = {op.txl_file for op in operators}
        self.duplicates = 0

    @staticmethod
    def race_probability(summary: TestingSummary | None) -> float:
        """Return DATA_RACE / (DATA_RACE + DEADLOCK), or 0.5 when neither occurred."""
        if summary is None:
            return 0.5
        races = summary.count(TestStatus.DATA_RACE)
        deadlocks = summary.count(TestStatus.DEADLOCK)
        total = races + deadlocks
        if total == 0:
            return 0.5
        return races / total

    def prefer_data_races(self, individual: "Individual") -> bool:
        """Draw whether the next mutation of ``individual`` should target races."""
        return RANDOM.random() <= self.race_probability(individual.summary)

    def operators_for(self, prefer_races: bool) -> list[MutationOperator]:
        """Return the registered operators of the preferred category."""
        if prefer_races:
            preferred = data_race_operators(self.operators)
        else:
            preferred = deadlock_operators(self.operators)
        # Nothing registered for the preferred category: any operator will do
        return preferred or list(self.operators)

    def operator_of(self, mutant_file: Path, individual_dir: Path) -> MutationOperator | None:
        """Resolve the operator that produced ``mutant_file`` from its output directory."""
        try:
            rel = Path(mutant_file).relative_to(individual_dir)
        except ValueError:
            return None
        if len(rel.parts) < 2 or rel.parts[0] not in self.registered:
            return None
        return operator_for_file(rel.parts[0])

    @staticmethod
    def source_for(mutant_file: Path, operator_dir: Path, source_files: list[str]) -> str | None:
        """Return the project-relative source file that ``mutant_file`` is a mutant of.

        Mutants keep the directory of their source file and are named after
        it with a numeric suffix, e.g. ``Account.java_3``. When several
        source names fit, the longest one wins.
        """
        try:
            rel_dir = Path(mutant_file).parent.relative_to(operator_dir)
        except ValueError:
            return None
        name = Path(mutant_file).name
        best: str | None = None
        for rel in source_files:
            rel_path = Path(rel)
            if rel_path.parent != rel_dir:
                continue
            if name == rel_path.name or name.startswith(rel_path.name + "_"):
                if best is None or len(rel_path.name) > len(Path(best).name):
                    best = rel
        return best

    def candidate_mutants(
        self,
        individual: "Individual",
        individual_dir: Path,
        mutant_files: list[Path],
        source_files: list[str],
        seen: set[Mutant],
    ) -> Iterator[tuple[Path, MutationOperator, str, dict[str, str], Mutant]]:
        """Yield usable mutants of ``individual`` in random order.

        A category is drawn once for the individual. Files produced by an
        operator outside that category, files that cannot be traced back to
        a source file, and variants whose Mutant identity was already seen
        are skipped.
        """
        allowed = {op.name for op in self.operators_for(self.prefer_data_races(individual))}
        remaining = list(mutant_files)
        while remaining:
            mutant_file = remaining.pop(RANDOM.randrange(len(remaining)))
            operator = self.operator_of(mutant_file, individual_dir)
            if operator is None or operator.name not in allowed:
                continue
            rel = self.source_for(mutant_file, individual_dir / operator.txl_file, source_files)
            if rel is None:
                continue
            file_map, mutant = individual.mutate(rel, mutant_file)
            if mutant in seen:
                self.duplicates += 1
                print(f"    -> Skipping duplicate mutant {mutant_file.name}", file=sys.stderr)
                continue
            yield mutant_file, operator, rel, file_map, mutant
